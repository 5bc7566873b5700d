"""Technical indicator library.

Pure functions over ordered price series. Series functions return a list
parallel to the input with None where the indicator is not yet available.
"""

from trendbot.indicators.averages import MacdSeries, ema, macd, sma
from trendbot.indicators.momentum import (
    compute_connors_rsi,
    compute_percent_rank,
    compute_rsi,
    connors_rsi_series,
    percent_rank_series,
    rsi_series,
    streak_series,
)
from trendbot.indicators.snapshot import (
    BollingerValue,
    IndicatorSnapshot,
    MacdValue,
    PrecomputedIndicators,
    latest_snapshots,
    precompute_indicators,
    snapshot_at,
)
from trendbot.indicators.volatility import BollingerSeries, adx, atr, bollinger_bands, true_range
from trendbot.indicators.volume import obv_proxy, vwap_proxy

__all__ = [
    "BollingerSeries",
    "BollingerValue",
    "IndicatorSnapshot",
    "MacdSeries",
    "MacdValue",
    "PrecomputedIndicators",
    "adx",
    "atr",
    "bollinger_bands",
    "compute_connors_rsi",
    "compute_percent_rank",
    "compute_rsi",
    "connors_rsi_series",
    "ema",
    "latest_snapshots",
    "macd",
    "obv_proxy",
    "percent_rank_series",
    "precompute_indicators",
    "rsi_series",
    "sma",
    "snapshot_at",
    "streak_series",
    "true_range",
    "vwap_proxy",
]
