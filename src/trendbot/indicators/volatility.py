"""Volatility and trend-strength indicators: Bollinger Bands, ATR, ADX."""

import math
from collections.abc import Sequence
from dataclasses import dataclass

from trendbot.indicators.averages import finite_or_none, finite_series, sma


@dataclass(frozen=True)
class BollingerSeries:
    """Parallel Bollinger band series. width is (upper - lower) / middle."""

    upper: list[float | None]
    middle: list[float | None]
    lower: list[float | None]
    width: list[float | None]


def bollinger_bands(
    values: Sequence[float],
    period: int = 20,
    multiplier: float = 2.0,
) -> BollingerSeries:
    """SMA +/- multiplier * population standard deviation of the window.

    Width is 0 when the middle band is not positive. Bands that overflow
    or hit a nan input are None.
    """
    n = len(values)
    middle = sma(values, period)
    upper: list[float | None] = [None] * n
    lower: list[float | None] = [None] * n
    width: list[float | None] = [None] * n

    for i in range(period - 1, n):
        mean = middle[i]
        if mean is None:
            continue
        window = values[i - period + 1 : i + 1]
        variance = sum((v - mean) ** 2 for v in window) / period
        std = math.sqrt(variance)
        up = finite_or_none(mean + multiplier * std)
        low = finite_or_none(mean - multiplier * std)
        if up is None or low is None:
            continue
        upper[i] = up
        lower[i] = low
        width[i] = finite_or_none((up - low) / mean) if mean > 0 else 0.0

    return BollingerSeries(upper=upper, middle=middle, lower=lower, width=width)


def true_range(
    highs: Sequence[float], lows: Sequence[float], closes: Sequence[float]
) -> list[float]:
    """True range per bar. The first bar has no previous close: high - low."""
    if not highs:
        return []
    tr = [highs[0] - lows[0]]
    for i in range(1, len(highs)):
        tr.append(
            max(
                highs[i] - lows[i],
                abs(highs[i] - closes[i - 1]),
                abs(lows[i] - closes[i - 1]),
            )
        )
    return tr


def atr(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    period: int = 14,
) -> list[float | None]:
    """Wilder-smoothed average true range. First value at index period - 1."""
    n = len(highs)
    result: list[float | None] = [None] * n
    if n < 2 or n < period or period < 1:
        return result

    tr = true_range(highs, lows, closes)
    value = sum(tr[:period]) / period
    result[period - 1] = value
    for i in range(period, n):
        value = (value * (period - 1) + tr[i]) / period
        result[i] = value
    return finite_series(result)


def adx(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    period: int = 14,
) -> list[float | None]:
    """Average Directional Index (0-100).

    Needs at least 2 * period + 1 bars, otherwise every entry is None.
    DX is defined from index `period`; ADX seeds at 2 * period - 1 with the
    mean of the first `period` DX values and then follows Wilder smoothing.
    """
    n = len(highs)
    result: list[float | None] = [None] * n
    if period < 1 or n < 2 * period + 1:
        return result

    tr = true_range(highs, lows, closes)
    plus_dm = [0.0]
    minus_dm = [0.0]
    for i in range(1, n):
        up_move = highs[i] - highs[i - 1]
        down_move = lows[i - 1] - lows[i]
        plus_dm.append(up_move if up_move > down_move and up_move > 0 else 0.0)
        minus_dm.append(down_move if down_move > up_move and down_move > 0 else 0.0)

    smooth_tr = sum(tr[1 : period + 1])
    smooth_plus = sum(plus_dm[1 : period + 1])
    smooth_minus = sum(minus_dm[1 : period + 1])

    dx: list[float] = [0.0] * n
    for i in range(period, n):
        if i > period:
            smooth_tr = smooth_tr - smooth_tr / period + tr[i]
            smooth_plus = smooth_plus - smooth_plus / period + plus_dm[i]
            smooth_minus = smooth_minus - smooth_minus / period + minus_dm[i]
        plus_di = smooth_plus / smooth_tr * 100 if smooth_tr > 0 else 0.0
        minus_di = smooth_minus / smooth_tr * 100 if smooth_tr > 0 else 0.0
        di_sum = plus_di + minus_di
        dx[i] = abs(plus_di - minus_di) / di_sum * 100 if di_sum > 0 else 0.0

    value = sum(dx[period : 2 * period]) / period
    result[2 * period - 1] = value
    for i in range(2 * period, n):
        value = (value * (period - 1) + dx[i]) / period
        result[i] = value
    return finite_series(result)
