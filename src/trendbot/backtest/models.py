"""Data models for the backtest engine and parameter sweep.

Defines the strategy contract (BacktestStrategy / StrategyContext), the
per-run configuration and result, per-trade detail, aggregate metrics,
and the sweep result rows with their trend annotation.

All prices and PnL figures are floats; PnL is in percent and already net
of the round-trip cost.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Literal

from trendbot.data.models import Candle
from trendbot.indicators.snapshot import IndicatorSnapshot
from trendbot.models import ExitMode, Signal

DEFAULT_COMMISSION_PCT = 0.3
DEFAULT_SLIPPAGE_PCT = 0.1


class ExitReason(str, Enum):
    """Why a simulated position was closed."""

    STRATEGY = "strategy"
    STOP_LOSS = "stop-loss"
    TAKE_PROFIT = "take-profit"
    END_OF_DATA = "end-of-data"


@dataclass(frozen=True)
class CostConfig:
    """Round-trip trading friction in percent.

    Attributes:
        model: "fixed" (constant) or "empirical" (median observed impact).
        round_trip_pct: Total cost charged once per closed trade.
        sample_size: Number of execution samples (empirical only).
    """

    model: Literal["fixed", "empirical"]
    round_trip_pct: float
    sample_size: int | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class BacktestPosition:
    """An open simulated position. Owned by the engine loop only."""

    entry_index: int
    entry_price: float
    entry_time_ms: int
    peak_price: float
    peak_pnl_pct: float = 0.0

    def pnl_pct_at(self, price: float) -> float:
        return (price - self.entry_price) / self.entry_price * 100


@dataclass(frozen=True)
class BacktestTrade:
    """A closed simulated trade.

    Attributes:
        mint: Token mint address.
        entry_time_ms: Entry candle timestamp.
        exit_time_ms: Exit candle timestamp.
        entry_price: Entry fill price.
        exit_price: Exit fill price (stop/target price for bound exits).
        pnl_pct: Realized PnL percent net of round-trip cost.
        hold_bars: Candles between entry and exit.
        hold_minutes: Minutes between entry and exit.
        exit_reason: Why the position was closed.
    """

    mint: str
    entry_time_ms: int
    exit_time_ms: int
    entry_price: float
    exit_price: float
    pnl_pct: float
    hold_bars: int
    hold_minutes: float
    exit_reason: ExitReason

    @property
    def is_win(self) -> bool:
        return self.pnl_pct > 0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["exit_reason"] = self.exit_reason.value
        return data


@dataclass(frozen=True)
class StrategyContext:
    """What a strategy sees on one bar of the simulation."""

    candle: Candle
    index: int
    indicators: IndicatorSnapshot
    prev_indicators: IndicatorSnapshot | None
    prev_candle: Candle | None
    positions: tuple[BacktestPosition, ...]
    hour_utc: int

    @property
    def has_position(self) -> bool:
        return bool(self.positions)


class BacktestStrategy(ABC):
    """Strategy contract consumed by the backtest engine.

    Attributes:
        name: Human-readable identifier used in results.
        required_history: Candles that must elapse before evaluation starts.
        stop_loss_pct: Negative percent from entry (e.g. -2.0), or None.
        take_profit_pct: Positive percent from entry (e.g. 3.0), or None.
    """

    name: str = "strategy"
    required_history: int = 0
    stop_loss_pct: float | None = None
    take_profit_pct: float | None = None

    @abstractmethod
    def evaluate(self, ctx: StrategyContext) -> Signal:
        """Return the signal for the current bar."""


@dataclass
class BacktestConfig:
    """Configuration for a single backtest run.

    The round-trip cost comes from `cost` when given, otherwise from
    (commission_pct + slippage_pct) * 2.
    """

    mint: str
    label: str
    strategy: BacktestStrategy
    commission_pct: float = DEFAULT_COMMISSION_PCT
    slippage_pct: float = DEFAULT_SLIPPAGE_PCT
    cost: CostConfig | None = None
    max_positions: int = 1
    exit_parity_mode: ExitMode = ExitMode.INDICATOR

    @property
    def round_trip_cost_pct(self) -> float:
        if self.cost is not None:
            return self.cost.round_trip_pct
        return (self.commission_pct + self.slippage_pct) * 2

    def to_dict(self) -> dict:
        return {
            "mint": self.mint,
            "label": self.label,
            "strategy": self.strategy.name,
            "round_trip_cost_pct": self.round_trip_cost_pct,
            "cost_model": self.cost.model if self.cost else "fixed",
            "max_positions": self.max_positions,
            "exit_parity_mode": self.exit_parity_mode.value,
        }


@dataclass
class BacktestResult:
    """Trade log of one backtest run."""

    strategy_name: str
    mint: str
    label: str
    trades: list[BacktestTrade] = field(default_factory=list)
    total_candles: int = 0
    start_ms: int = 0
    end_ms: int = 0

    @property
    def date_range_ms(self) -> int:
        return self.end_ms - self.start_ms


@dataclass(frozen=True)
class BacktestMetrics:
    """Aggregate trade metrics.

    win_rate is in percent. profit_factor and avg_win_loss_ratio are
    math.inf when there are wins and no losses.
    """

    total_trades: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: float = 0.0
    avg_win_pct: float = 0.0
    avg_loss_pct: float = 0.0
    avg_win_loss_ratio: float = 0.0
    profit_factor: float = 0.0
    total_pnl_pct: float = 0.0
    max_drawdown_pct: float = 0.0
    sharpe_ratio: float = 0.0
    avg_hold_bars: float = 0.0
    avg_hold_minutes: float = 0.0
    trades_per_day: float = 0.0

    def to_dict(self) -> dict:
        return {
            k: (None if isinstance(v, float) and math.isinf(v) else v)
            for k, v in asdict(self).items()
        }


@dataclass(frozen=True)
class TrendAnnotation:
    """Trend/regime context for a token over its sweep evaluation window.

    Returns are percentages. relative_strength is ret24h minus the
    baseline asset's ret24h. atr_percentile is the rank of the latest ATR
    within the window's ATR history (0-100). volume_zscore compares the
    last bar's volume proxy with the trailing mean and std.
    """

    ret24h: float | None = None
    ret48h: float | None = None
    ret72h: float | None = None
    ret168h: float | None = None
    trend_score: float | None = None
    regime: str = "unknown"
    relative_strength: float | None = None
    coverage_hours: int = 0
    hour_utc: int | None = None
    day_of_week: int | None = None
    atr_percentile: float | None = None
    volume_zscore: float | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SweepResult:
    """One (template, params, token, timeframe, exit mode) evaluation."""

    template: str
    params: dict[str, float]
    token: str
    mint: str
    timeframe: int
    exit_mode: ExitMode
    metrics: BacktestMetrics
    annotation: TrendAnnotation = field(default_factory=TrendAnnotation)
    trades: list[BacktestTrade] = field(default_factory=list)
    parity_delta: float | None = None  # indicator-exit win rate minus price-exit win rate

    @property
    def params_string(self) -> str:
        return " ".join(f"{k}={_format_param(v)}" for k, v in self.params.items())


def _format_param(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
