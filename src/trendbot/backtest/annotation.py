"""Trend and market-context annotation for sweep results.

Every sweep row for a (token, timeframe) carries the same annotation,
computed once from the token's full candle series as of its last candle.
"""

import math
from collections.abc import Sequence
from datetime import datetime, timezone

from trendbot.backtest.models import TrendAnnotation
from trendbot.config import RegimeSettings
from trendbot.data.candles import volume_series
from trendbot.data.models import Candle
from trendbot.indicators.snapshot import ATR_PERIOD
from trendbot.indicators.volatility import atr
from trendbot.strategy.regime import classify_regime, compute_regime_data


def atr_percentile(values: Sequence[float | None]) -> float | None:
    """Percent of defined ATR values at or below the latest one (0-100)."""
    if not values or values[-1] is None:
        return None
    history = [v for v in values if v is not None]
    current = values[-1]
    return sum(1 for v in history if v <= current) / len(history) * 100


def volume_zscore(volumes: Sequence[float]) -> float | None:
    """Z-score of the last volume against the mean/std of the preceding ones."""
    if len(volumes) < 3:
        return None
    trailing = volumes[:-1]
    mean = sum(trailing) / len(trailing)
    std = math.sqrt(sum((v - mean) ** 2 for v in trailing) / len(trailing))
    if std == 0:
        return None
    return (volumes[-1] - mean) / std


def annotate_trend(
    candles: Sequence[Candle],
    baseline_candles: Sequence[Candle] | None = None,
    settings: RegimeSettings | None = None,
    atr_values: Sequence[float | None] | None = None,
) -> TrendAnnotation:
    """Annotate a candle series with trend, regime and market context.

    Args:
        candles: Token candles ordered by timestamp.
        baseline_candles: Reference asset candles for relative strength.
        settings: Regime thresholds and weights.
        atr_values: Precomputed ATR series for candles, if already available.

    Returns:
        TrendAnnotation; regime is "unknown" when no trend score is available.
    """
    if not candles:
        return TrendAnnotation()

    settings = settings or RegimeSettings()
    last = candles[-1]
    at_ms = last.timestamp_ms

    data = compute_regime_data(candles, at_ms, settings)
    regime = classify_regime(data, settings).value if data.trend_score is not None else "unknown"

    relative_strength = None
    if baseline_candles and data.ret24h is not None:
        baseline = compute_regime_data(baseline_candles, at_ms, settings)
        if baseline.ret24h is not None:
            relative_strength = data.ret24h - baseline.ret24h

    if atr_values is None:
        atr_values = atr(
            [c.high for c in candles],
            [c.low for c in candles],
            [c.close for c in candles],
            ATR_PERIOD,
        )

    last_dt = datetime.fromtimestamp(at_ms / 1000, tz=timezone.utc)
    return TrendAnnotation(
        ret24h=data.ret24h,
        ret48h=data.ret48h,
        ret72h=data.ret72h,
        ret168h=data.ret168h,
        trend_score=data.trend_score,
        regime=regime,
        relative_strength=relative_strength,
        coverage_hours=data.coverage_hours,
        hour_utc=last_dt.hour,
        day_of_week=last_dt.weekday(),
        atr_percentile=atr_percentile(atr_values),
        volume_zscore=volume_zscore(volume_series(candles)),
    )
