"""Moving averages and MACD.

Non-finite results (from inf/nan inputs) are reported as None.
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass


@dataclass(frozen=True)
class MacdSeries:
    """Parallel MACD line, signal line and histogram series."""

    macd: list[float | None]
    signal: list[float | None]
    histogram: list[float | None]


def finite_or_none(value: float | None) -> float | None:
    return value if value is not None and math.isfinite(value) else None


def finite_series(values: Sequence[float | None]) -> list[float | None]:
    return [finite_or_none(v) for v in values]


def sma(values: Sequence[float], period: int) -> list[float | None]:
    """Simple moving average. First value at index period - 1."""
    result: list[float | None] = [None] * len(values)
    if period < 1 or len(values) < period:
        return result

    window_sum = sum(values[:period])
    result[period - 1] = window_sum / period
    for i in range(period, len(values)):
        window_sum += values[i] - values[i - period]
        result[i] = window_sum / period
    return finite_series(result)


def ema(values: Sequence[float], period: int) -> list[float | None]:
    """Exponential moving average seeded with the SMA of the first window.

    Smoothing constant k = 2 / (period + 1). First value at index period - 1.
    """
    result: list[float | None] = [None] * len(values)
    if period < 1 or len(values) < period:
        return result

    k = 2.0 / (period + 1)
    prev = sum(values[:period]) / period
    result[period - 1] = prev
    for i in range(period, len(values)):
        prev = values[i] * k + prev * (1 - k)
        result[i] = prev
    return finite_series(result)


def macd(
    values: Sequence[float],
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> MacdSeries:
    """MACD line, signal line and histogram.

    The signal EMA runs only over MACD values from index slow_period - 1
    onwards (where the slow EMA exists), then is padded back to full length.
    With the defaults the MACD line starts at 25 and signal/histogram at 33.

    Args:
        values: Close series.
        fast_period: Fast EMA period.
        slow_period: Slow EMA period.
        signal_period: Signal EMA period.

    Returns:
        MacdSeries with three lists the same length as values.
    """
    n = len(values)
    fast = ema(values, fast_period)
    slow = ema(values, slow_period)

    macd_line: list[float | None] = [
        finite_or_none(f - s) if f is not None and s is not None else None
        for f, s in zip(fast, slow)
    ]

    start = slow_period - 1
    valid = [m for m in macd_line[start:] if m is not None]
    signal: list[float | None] = [None] * n
    if len(valid) == n - start:
        for offset, value in enumerate(ema(valid, signal_period)):
            signal[start + offset] = value

    histogram: list[float | None] = [
        finite_or_none(m - s) if m is not None and s is not None else None
        for m, s in zip(macd_line, signal)
    ]

    return MacdSeries(macd=macd_line, signal=signal, histogram=histogram)
