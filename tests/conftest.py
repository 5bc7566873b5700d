"""Shared test fixtures for the trendbot signal core."""

from collections.abc import Callable, Sequence

import pytest

from trendbot.config import RegimeSettings
from trendbot.data.models import Candle

# 2024-01-01 00:00:00 UTC (a Monday)
T0_MS = 1_704_067_200_000
MINUTE_MS = 60_000
HOUR_MS = 60 * MINUTE_MS

CandleFactory = Callable[..., list[Candle]]


def build_candles(
    closes: Sequence[float],
    start_ms: int = T0_MS,
    step_ms: int = MINUTE_MS,
    spread: float = 0.0,
    volume: float = 1.0,
) -> list[Candle]:
    """Candles whose open equals the close and high/low sit +/- spread around it."""
    return [
        Candle(
            timestamp_ms=start_ms + i * step_ms,
            open=close,
            high=close + spread,
            low=close - spread,
            close=close,
            volume_proxy=volume,
        )
        for i, close in enumerate(closes)
    ]


@pytest.fixture
def make_candles() -> CandleFactory:
    """Factory building minute candles from a close series."""
    return build_candles


@pytest.fixture
def regime_settings() -> RegimeSettings:
    """RegimeSettings with the default thresholds and fast scheduling."""
    return RegimeSettings(refresh_interval_seconds=0.01, stagger_seconds=0.0)
