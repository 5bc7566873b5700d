"""Configuration system using pydantic-settings with environment variable loading."""

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from trendbot.exceptions import InvalidWeightsError
from trendbot.logging import setup_logging

WEIGHT_SUM_TOLERANCE = 0.01


class BacktestSettings(BaseSettings):
    """Backtest engine defaults.

    Commission and slippage are per side, in percent. The engine charges
    (commission + slippage) * 2 per closed trade unless a cost model
    supplies an explicit round trip.
    All fields configurable via BACKTEST_ environment variable prefix.
    """

    model_config = SettingsConfigDict(env_prefix="BACKTEST_")

    commission_pct: float = 0.3
    slippage_pct: float = 0.1
    max_positions: int = Field(default=1, ge=1)


class CostSettings(BaseSettings):
    """Empirical cost model parameters."""

    model_config = SettingsConfigDict(env_prefix="COST_")

    model: Literal["fixed", "empirical"] = "fixed"
    commission_per_side_pct: float = 0.25  # protocol base fee for liquid pools
    min_empirical_samples: int = 30


class RegimeSettings(BaseSettings):
    """Trend regime classification and refresh scheduling.

    Scores are weighted percentage returns over 24h/48h/72h. A token is
    an uptrend when score >= uptrend_score AND the 24h gate >= uptrend_gate24,
    symmetric for downtrend. Weights must sum to 1.0.
    All fields configurable via REGIME_ environment variable prefix.
    """

    model_config = SettingsConfigDict(env_prefix="REGIME_")

    # Classification thresholds
    uptrend_score: float = 8.0
    uptrend_gate24: float = 3.0
    downtrend_score: float = -6.0
    downtrend_gate24: float = -2.0

    # Hysteresis
    score_buffer: float = 1.0  # +/- band around either threshold cancels pending flips
    hysteresis_cycles: int = Field(default=2, ge=1)
    low_coverage_hours: int = 24  # below this the token is forced sideways

    # Horizon weights (must sum to 1.0)
    weight_ret24h: float = 0.5
    weight_ret48h: float = 0.3
    weight_ret72h: float = 0.2

    # Scheduling
    refresh_interval_seconds: float = 30 * 60
    stagger_seconds: float = 5.0
    lookback_hours: int = 72
    history_days: int = 8  # candle window requested from the provider per refresh

    @model_validator(mode="after")
    def _check_weights(self) -> "RegimeSettings":
        total = self.weight_ret24h + self.weight_ret48h + self.weight_ret72h
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise InvalidWeightsError(
                f"Regime horizon weights must sum to 1.0 (got {total:.4f})"
            )
        return self


class SweepSettings(BaseSettings):
    """Parameter sweep defaults."""

    model_config = SettingsConfigDict(env_prefix="SWEEP_")

    min_trades: int = 3
    rank_epsilon: float = 0.01
    timeframes: list[int] = [1]
    exit_parity: Literal["indicator", "price", "both"] = "indicator"
    rank_exit_parity: Literal["indicator", "price"] = "indicator"  # ranked mode when both ran
    top_n: int = 30
    baseline_label: str = "SOL"  # relative-strength reference asset


class CandidateSettings(BaseSettings):
    """Probe/core candidate bucketing for ranked sweep rows.

    Adjusted win rate uses a Bayesian prior of prior_wins / prior_losses
    to shrink small samples toward 50%.
    """

    model_config = SettingsConfigDict(env_prefix="CANDIDATE_")

    min_win_rate: float = 65.0
    probe_min_trades: int = 3
    probe_max_trades: int = 7
    core_min_trades: int = 20
    core_min_profit_factor: float = 1.1
    core_min_pnl_pct: float = 0.0
    prior_wins: float = 3.0
    prior_losses: float = 3.0


class PromotionSettings(BaseSettings):
    """Filters applied when promoting ranked candidates into the live map."""

    model_config = SettingsConfigDict(env_prefix="PROMOTION_")

    min_trades: int = 12
    min_adjusted_win_rate: float = 65.0
    min_profit_factor: float = 1.2
    min_parity_delta: float = -10.0
    max_hold_minutes: float = 600.0
    preferred_exit_mode: Literal["price", "indicator"] = "price"


class LiveMapSettings(BaseSettings):
    """Location of the live strategy map file."""

    model_config = SettingsConfigDict(env_prefix="LIVE_MAP_")

    path: str = "config/live-strategy-map.json"


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    backtest: BacktestSettings = BacktestSettings()
    cost: CostSettings = CostSettings()
    regime: RegimeSettings = RegimeSettings()
    sweep: SweepSettings = SweepSettings()
    candidate: CandidateSettings = CandidateSettings()
    promotion: PromotionSettings = PromotionSettings()
    live_map: LiveMapSettings = LiveMapSettings()


def load_settings() -> AppSettings:
    """Load AppSettings from the environment and configure logging at its level."""
    settings = AppSettings()
    setup_logging(settings.log_level)
    return settings
