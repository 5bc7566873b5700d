"""Volume-proxy indicators.

Only an observation count per bar is available (not traded volume), so
VWAP and OBV are computed against that proxy. Non-finite values
(from inf/nan inputs) are reported as None.
"""

from collections.abc import Sequence

from trendbot.indicators.averages import finite_series


def vwap_proxy(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    volumes: Sequence[float],
) -> list[float | None]:
    """Cumulative typical-price * volume / cumulative volume.

    While cumulative volume is still zero the bar's typical price is used.
    """
    result: list[float] = []
    cum_pv = 0.0
    cum_v = 0.0
    for high, low, close, volume in zip(highs, lows, closes, volumes):
        typical = (high + low + close) / 3
        cum_pv += typical * volume
        cum_v += volume
        result.append(cum_pv / cum_v if cum_v > 0 else typical)
    return finite_series(result)


def obv_proxy(closes: Sequence[float], volumes: Sequence[float]) -> list[float | None]:
    """Running sum of sign(close change) * volume, starting at 0."""
    if not closes:
        return []
    result = [0.0]
    for i in range(1, len(closes)):
        if closes[i] > closes[i - 1]:
            direction = 1
        elif closes[i] < closes[i - 1]:
            direction = -1
        else:
            direction = 0
        result.append(result[-1] + direction * volumes[i])
    return finite_series(result)
