"""Trade metrics and the text report for a single backtest."""

import math
from collections.abc import Sequence
from datetime import datetime, timezone

from trendbot.backtest.models import BacktestMetrics, BacktestResult, BacktestTrade

DAY_MS = 86_400_000
TRADE_LOG_LIMIT = 50


def compute_metrics(trades: Sequence[BacktestTrade], date_range_ms: int) -> BacktestMetrics:
    """Aggregate metrics over a trade log.

    A trade is a win when pnl_pct > 0. Max drawdown is measured on the
    cumulative PnL percent curve. Sharpe is mean/std (population) of the
    per-trade returns, annualized by sqrt(trades_per_day * 365).

    Args:
        trades: Closed trades in exit order.
        date_range_ms: Span of the candle series, used for trades/day.

    Returns:
        BacktestMetrics; all zeros when there are no trades.
    """
    if not trades:
        return BacktestMetrics()

    n = len(trades)
    wins = [t.pnl_pct for t in trades if t.pnl_pct > 0]
    losses = [t.pnl_pct for t in trades if t.pnl_pct <= 0]

    avg_win = sum(wins) / len(wins) if wins else 0.0
    avg_loss = sum(losses) / len(losses) if losses else 0.0
    if avg_loss != 0:
        win_loss_ratio = abs(avg_win / avg_loss)
    else:
        win_loss_ratio = math.inf if avg_win > 0 else 0.0

    total_win = sum(wins)
    total_loss = abs(sum(losses))
    if total_loss > 0:
        profit_factor = total_win / total_loss
    else:
        profit_factor = math.inf if total_win > 0 else 0.0

    peak = cumulative = max_dd = 0.0
    for t in trades:
        cumulative += t.pnl_pct
        peak = max(peak, cumulative)
        max_dd = max(max_dd, peak - cumulative)

    returns = [t.pnl_pct / 100 for t in trades]
    mean = sum(returns) / n
    std = math.sqrt(sum((r - mean) ** 2 for r in returns) / n)
    days = date_range_ms / DAY_MS
    trades_per_day = n / days if days > 0 else float(n)
    sharpe = mean / std * math.sqrt(trades_per_day * 365) if std > 0 else 0.0

    return BacktestMetrics(
        total_trades=n,
        wins=len(wins),
        losses=len(losses),
        win_rate=len(wins) / n * 100,
        avg_win_pct=avg_win,
        avg_loss_pct=avg_loss,
        avg_win_loss_ratio=win_loss_ratio,
        profit_factor=profit_factor,
        total_pnl_pct=sum(t.pnl_pct for t in trades),
        max_drawdown_pct=max_dd,
        sharpe_ratio=sharpe,
        avg_hold_bars=sum(t.hold_bars for t in trades) / n,
        avg_hold_minutes=sum(t.hold_minutes for t in trades) / n,
        trades_per_day=trades_per_day,
    )


def format_ratio(value: float, digits: int = 2) -> str:
    return "Inf" if math.isinf(value) else f"{value:.{digits}f}"


def _date(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d")


def format_backtest_report(result: BacktestResult) -> str:
    """Format a console report for one backtest, with the trade log for short runs."""
    m = compute_metrics(result.trades, result.date_range_ms)

    lines: list[str] = []
    lines.append("=" * 60)
    lines.append(f"Strategy: {result.strategy_name}")
    lines.append(f"Token:    {result.label} ({result.mint[:8]}...)")
    lines.append(
        f"Period:   {_date(result.start_ms)} to {_date(result.end_ms)} "
        f"({result.total_candles} candles)"
    )
    lines.append("=" * 60)
    lines.append(f"Trades:        {m.total_trades} ({m.wins}W / {m.losses}L)")
    lines.append(f"Win rate:      {m.win_rate:.1f}%")
    lines.append(f"Avg win:       +{m.avg_win_pct:.2f}%")
    lines.append(f"Avg loss:      {m.avg_loss_pct:.2f}%")
    lines.append(f"W/L ratio:     {format_ratio(m.avg_win_loss_ratio)}")
    lines.append(f"Profit factor: {format_ratio(m.profit_factor)}")
    lines.append(f"Total PnL:     {m.total_pnl_pct:+.2f}%")
    lines.append(f"Max drawdown:  {m.max_drawdown_pct:.2f}%")
    lines.append(f"Sharpe:        {m.sharpe_ratio:.2f}")
    lines.append(f"Avg hold:      {m.avg_hold_bars:.0f} bars ({m.avg_hold_minutes:.0f} min)")
    lines.append(f"Trades/day:    {m.trades_per_day:.1f}")
    lines.append("=" * 60)

    if 0 < len(result.trades) <= TRADE_LOG_LIMIT:
        lines.append("")
        lines.append("Trade log:")
        for t in result.trades:
            entry = datetime.fromtimestamp(t.entry_time_ms / 1000, tz=timezone.utc)
            lines.append(
                f"  {entry:%H:%M} | {t.pnl_pct:+.2f}% | {t.hold_bars} bars | {t.exit_reason.value}"
            )

    return "\n".join(lines)
