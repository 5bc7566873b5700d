"""Momentum oscillators: RSI, streaks, percent-rank and ConnorsRSI.

Series functions return one entry per input value, with None while the
indicator does not yet have enough history. Scalar helpers return the
value at the end of the input, or None.

ConnorsRSI = mean(RSI(closes, 3), RSI(streaks, 2), PercentRank(returns, 100))
with the classic defaults.
"""

from collections.abc import Sequence

from trendbot.indicators.averages import finite_or_none

CRSI_RSI_PERIOD = 3
CRSI_STREAK_PERIOD = 2
CRSI_RANK_PERIOD = 100


def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    return 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)


def rsi_series(values: Sequence[float], period: int) -> list[float | None]:
    """Wilder-smoothed RSI at every index.

    The first value appears at index `period` (period + 1 inputs are
    needed). When the average loss is exactly zero the RSI is 100.

    Args:
        values: Input series (closes, or a streak series).
        period: Smoothing period.

    Returns:
        List the same length as values.
    """
    result: list[float | None] = [None] * len(values)
    if period < 1 or len(values) < period + 1:
        return result

    avg_gain = 0.0
    avg_loss = 0.0
    for i in range(1, period + 1):
        delta = values[i] - values[i - 1]
        if delta >= 0:
            avg_gain += delta
        else:
            avg_loss -= delta
    avg_gain /= period
    avg_loss /= period
    result[period] = finite_or_none(_rsi_from_averages(avg_gain, avg_loss))

    for i in range(period + 1, len(values)):
        delta = values[i] - values[i - 1]
        gain = delta if delta > 0 else 0.0
        loss = -delta if delta < 0 else 0.0
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period
        result[i] = finite_or_none(_rsi_from_averages(avg_gain, avg_loss))

    return result


def compute_rsi(values: Sequence[float], period: int) -> float | None:
    """RSI value at the last index, or None with fewer than period + 1 values."""
    if not values:
        return None
    return rsi_series(values, period)[-1]


def streak_series(values: Sequence[float]) -> list[float]:
    """Signed run length of consecutive up/down closes.

    Index 0 is 0. An up close extends a positive streak (or starts one at
    +1), a down close extends a negative one, and a flat close resets to 0.
    """
    if not values:
        return []
    streaks = [0.0]
    streak = 0.0
    for i in range(1, len(values)):
        delta = values[i] - values[i - 1]
        if delta > 0:
            streak = streak + 1 if streak >= 0 else 1.0
        elif delta < 0:
            streak = streak - 1 if streak <= 0 else -1.0
        else:
            streak = 0.0
        streaks.append(streak)
    return streaks


def percent_rank_series(values: Sequence[float], period: int) -> list[float | None]:
    """Percent of the last `period` single-bar returns <= the latest return.

    Returns are close-to-close differences with returns[0] = 0. The first
    value appears at index `period`. Output is in [0, 100].
    """
    result: list[float | None] = [None] * len(values)
    if period < 1 or len(values) < period + 1:
        return result

    returns = [0.0] + [values[i] - values[i - 1] for i in range(1, len(values))]
    for i in range(period, len(returns)):
        window = returns[i - period + 1 : i + 1]
        current = window[-1]
        count = sum(1 for r in window if r <= current)
        result[i] = count / len(window) * 100.0
    return result


def compute_percent_rank(values: Sequence[float], period: int) -> float | None:
    """Percent-rank at the last index, or None with fewer than period + 1 values."""
    if not values:
        return None
    return percent_rank_series(values, period)[-1]


def connors_rsi_series(
    values: Sequence[float],
    rsi_period: int = CRSI_RSI_PERIOD,
    streak_period: int = CRSI_STREAK_PERIOD,
    rank_period: int = CRSI_RANK_PERIOD,
) -> list[float | None]:
    """ConnorsRSI at every index.

    Defined only where all three components are defined; the default
    parameters first produce a value at index 100.
    """
    price_rsi = rsi_series(values, rsi_period)
    streak_rsi = rsi_series(streak_series(values), streak_period)
    rank = percent_rank_series(values, rank_period)

    result: list[float | None] = [None] * len(values)
    for i in range(len(values)):
        p, s, r = price_rsi[i], streak_rsi[i], rank[i]
        if p is not None and s is not None and r is not None:
            result[i] = (p + s + r) / 3.0
    return result


def compute_connors_rsi(
    values: Sequence[float],
    rsi_period: int = CRSI_RSI_PERIOD,
    streak_period: int = CRSI_STREAK_PERIOD,
    rank_period: int = CRSI_RANK_PERIOD,
) -> float | None:
    """ConnorsRSI at the last index."""
    if not values:
        return None
    return connors_rsi_series(values, rsi_period, streak_period, rank_period)[-1]
