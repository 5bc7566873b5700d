"""Tabular export of sweep results (one row per evaluated combination)."""

import csv
import math
from collections.abc import Sequence
from typing import IO, Any

from trendbot.backtest.models import SweepResult

SWEEP_COLUMNS: tuple[str, ...] = (
    "template",
    "token",
    "timeframe",
    "params",
    "trades",
    "win_rate",
    "pnl_pct",
    "profit_factor",
    "sharpe",
    "max_drawdown_pct",
    "avg_win_loss",
    "avg_win_pct",
    "avg_loss_pct",
    "avg_hold_minutes",
    "trades_per_day",
    "exit_mode",
    "parity_delta",
    "ret24h",
    "ret48h",
    "ret72h",
    "ret168h",
    "trend_score",
    "trend_regime",
    "relative_strength",
    "coverage_hours",
    "hour_utc",
    "day_of_week",
    "atr_percentile",
    "volume_zscore",
)


def _cell(value: float | None, digits: int = 4) -> Any:
    if value is None or (isinstance(value, float) and not math.isfinite(value)):
        return ""
    return round(value, digits)


def sweep_rows(results: Sequence[SweepResult]) -> list[dict[str, Any]]:
    """One flat dict per result, keyed by SWEEP_COLUMNS.

    Infinite and unavailable values are exported as empty strings.
    """
    rows = []
    for r in results:
        m, a = r.metrics, r.annotation
        rows.append(
            {
                "template": r.template,
                "token": r.token,
                "timeframe": r.timeframe,
                "params": r.params_string,
                "trades": m.total_trades,
                "win_rate": _cell(m.win_rate, 2),
                "pnl_pct": _cell(m.total_pnl_pct),
                "profit_factor": _cell(m.profit_factor),
                "sharpe": _cell(m.sharpe_ratio),
                "max_drawdown_pct": _cell(m.max_drawdown_pct),
                "avg_win_loss": _cell(m.avg_win_loss_ratio),
                "avg_win_pct": _cell(m.avg_win_pct),
                "avg_loss_pct": _cell(m.avg_loss_pct),
                "avg_hold_minutes": _cell(m.avg_hold_minutes, 1),
                "trades_per_day": _cell(m.trades_per_day, 2),
                "exit_mode": r.exit_mode.value,
                "parity_delta": _cell(r.parity_delta, 2),
                "ret24h": _cell(a.ret24h),
                "ret48h": _cell(a.ret48h),
                "ret72h": _cell(a.ret72h),
                "ret168h": _cell(a.ret168h),
                "trend_score": _cell(a.trend_score),
                "trend_regime": a.regime,
                "relative_strength": _cell(a.relative_strength),
                "coverage_hours": a.coverage_hours,
                "hour_utc": "" if a.hour_utc is None else a.hour_utc,
                "day_of_week": "" if a.day_of_week is None else a.day_of_week,
                "atr_percentile": _cell(a.atr_percentile, 1),
                "volume_zscore": _cell(a.volume_zscore, 3),
            }
        )
    return rows


def write_sweep_csv(results: Sequence[SweepResult], stream: IO[str]) -> int:
    """Write results as CSV with a header row. Returns the number of data rows."""
    rows = sweep_rows(results)
    writer = csv.DictWriter(stream, fieldnames=SWEEP_COLUMNS)
    writer.writeheader()
    writer.writerows(rows)
    return len(rows)
