"""Bar-by-bar backtest simulation.

Replays one candle series through a strategy. Indicators are precomputed
once before the loop and read by index, so the loop only performs
position state transitions and cost accounting.

Per bar, starting at the strategy's required_history:

1. Stop-loss / take-profit bounds are checked intra-bar against the
   bar's low/high for positions opened on earlier bars. Stop-loss has
   priority; the exit fills at the bound price.
2. Peak price and peak PnL of open positions are updated from the close.
3. The strategy is evaluated. SELL closes every open position at the
   close (unless exit parity mode is PRICE); BUY opens a position at the
   close while fewer than max_positions are open and the close is positive.

Positions still open after the last candle are force-closed at its close
with exit reason "end-of-data".

No look-ahead: the context for bar i only exposes candles and indicator
values up to i.
"""

from collections.abc import Sequence
from datetime import datetime, timezone

from trendbot.backtest.models import (
    BacktestConfig,
    BacktestPosition,
    BacktestResult,
    BacktestTrade,
    ExitReason,
    StrategyContext,
)
from trendbot.data.models import Candle
from trendbot.indicators.snapshot import (
    IndicatorSnapshot,
    PrecomputedIndicators,
    precompute_indicators,
    snapshot_at,
)
from trendbot.logging import get_logger
from trendbot.models import ExitMode, Signal

logger = get_logger(__name__)

MINUTE_MS = 60_000


def hour_utc(timestamp_ms: int) -> int:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).hour


class BacktestEngine:
    """Simulates one strategy over one candle series.

    Args:
        config: Token, strategy, cost and position settings.
    """

    def __init__(self, config: BacktestConfig) -> None:
        self._config = config
        self._round_trip_cost = config.round_trip_cost_pct
        self._positions: list[BacktestPosition] = []
        self._trades: list[BacktestTrade] = []

    def run(
        self,
        candles: Sequence[Candle],
        precomputed: PrecomputedIndicators | None = None,
    ) -> BacktestResult:
        """Run the simulation.

        Args:
            candles: Candles ordered by timestamp.
            precomputed: Indicator series for these candles. Computed here
                when omitted; the sweep passes them in to share one
                computation across parameter combinations.

        Returns:
            BacktestResult with the trade log. Empty input yields an empty result.
        """
        config = self._config
        strategy = config.strategy
        self._positions = []
        self._trades = []

        if not candles:
            return BacktestResult(strategy_name=strategy.name, mint=config.mint, label=config.label)

        pre = precomputed if precomputed is not None else precompute_indicators(candles)
        if pre.length != len(candles):
            raise ValueError(
                f"precomputed indicators cover {pre.length} candles, expected {len(candles)}"
            )

        prev_snapshot: IndicatorSnapshot | None = None
        if strategy.required_history > 0 and strategy.required_history <= len(candles):
            prev_snapshot = snapshot_at(pre, strategy.required_history - 1)

        for i in range(max(strategy.required_history, 0), len(candles)):
            candle = candles[i]

            if self._positions:
                self._check_bounds(i, candle)

            for pos in self._positions:
                if candle.close > pos.peak_price:
                    pos.peak_price = candle.close
                pnl_pct = pos.pnl_pct_at(candle.close)
                if pnl_pct > pos.peak_pnl_pct:
                    pos.peak_pnl_pct = pnl_pct

            snapshot = snapshot_at(pre, i)
            ctx = StrategyContext(
                candle=candle,
                index=i,
                indicators=snapshot,
                prev_indicators=prev_snapshot,
                prev_candle=candles[i - 1] if i > 0 else None,
                positions=tuple(self._positions),
                hour_utc=hour_utc(candle.timestamp_ms),
            )
            prev_snapshot = snapshot

            signal = strategy.evaluate(ctx)

            if signal is Signal.SELL and self._positions:
                if config.exit_parity_mode is not ExitMode.PRICE:
                    for pos in self._positions:
                        self._record(pos, i, candle, candle.close, ExitReason.STRATEGY)
                    self._positions = []
            elif (
                signal is Signal.BUY
                and len(self._positions) < config.max_positions
                and candle.close > 0
            ):
                self._positions.append(
                    BacktestPosition(
                        entry_index=i,
                        entry_price=candle.close,
                        entry_time_ms=candle.timestamp_ms,
                        peak_price=candle.close,
                    )
                )

        last_index = len(candles) - 1
        last = candles[last_index]
        for pos in self._positions:
            self._record(pos, last_index, last, last.close, ExitReason.END_OF_DATA)
        self._positions = []

        result = BacktestResult(
            strategy_name=strategy.name,
            mint=config.mint,
            label=config.label,
            trades=self._trades,
            total_candles=len(candles),
            start_ms=candles[0].timestamp_ms,
            end_ms=last.timestamp_ms,
        )
        logger.debug(
            "backtest_complete",
            strategy=strategy.name,
            mint=config.mint,
            candles=len(candles),
            trades=len(result.trades),
        )
        return result

    def _check_bounds(self, index: int, candle: Candle) -> None:
        """Close positions whose stop-loss or take-profit was touched intra-bar."""
        strategy = self._config.strategy
        remaining: list[BacktestPosition] = []

        for pos in self._positions:
            if pos.entry_index >= index:
                remaining.append(pos)
                continue

            if strategy.stop_loss_pct is not None:
                stop_price = pos.entry_price * (1 + strategy.stop_loss_pct / 100)
                if candle.low <= stop_price:
                    self._record(
                        pos, index, candle, stop_price, ExitReason.STOP_LOSS,
                        gross_pnl_pct=strategy.stop_loss_pct,
                    )
                    continue

            if strategy.take_profit_pct is not None:
                target_price = pos.entry_price * (1 + strategy.take_profit_pct / 100)
                if candle.high >= target_price:
                    self._record(
                        pos, index, candle, target_price, ExitReason.TAKE_PROFIT,
                        gross_pnl_pct=strategy.take_profit_pct,
                    )
                    continue

            remaining.append(pos)

        self._positions = remaining

    def _record(
        self,
        pos: BacktestPosition,
        index: int,
        candle: Candle,
        exit_price: float,
        reason: ExitReason,
        gross_pnl_pct: float | None = None,
    ) -> None:
        if gross_pnl_pct is None:
            gross_pnl_pct = pos.pnl_pct_at(exit_price)
        self._trades.append(
            BacktestTrade(
                mint=self._config.mint,
                entry_time_ms=pos.entry_time_ms,
                exit_time_ms=candle.timestamp_ms,
                entry_price=pos.entry_price,
                exit_price=exit_price,
                pnl_pct=gross_pnl_pct - self._round_trip_cost,
                hold_bars=index - pos.entry_index,
                hold_minutes=(candle.timestamp_ms - pos.entry_time_ms) / MINUTE_MS,
                exit_reason=reason,
            )
        )


def run_backtest(
    candles: Sequence[Candle],
    config: BacktestConfig,
    precomputed: PrecomputedIndicators | None = None,
) -> BacktestResult:
    """Run a single backtest. See BacktestEngine.run."""
    return BacktestEngine(config).run(candles, precomputed)
