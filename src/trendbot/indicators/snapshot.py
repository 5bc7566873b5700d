"""Indicator precomputation and per-index snapshots.

The backtest engine calls precompute_indicators once per candle series and
then only reads snapshots by index, so the simulation loop never
recomputes an indicator. Every value at index i depends only on candles
0..i.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field

from trendbot.data.candles import close_series, high_series, low_series, volume_series
from trendbot.data.models import Candle
from trendbot.indicators.averages import MacdSeries, ema, macd, sma
from trendbot.indicators.momentum import connors_rsi_series, rsi_series
from trendbot.indicators.volatility import BollingerSeries, adx, atr, bollinger_bands
from trendbot.indicators.volume import obv_proxy, vwap_proxy

RSI_PERIOD = 14
RSI_SHORT_PERIOD = 2
SMA_PERIODS = (10, 20, 50)
EMA_PERIODS = (9, 12, 26)
ATR_PERIOD = 14
ADX_PERIOD = 14


@dataclass(frozen=True)
class MacdValue:
    macd: float
    signal: float
    histogram: float


@dataclass(frozen=True)
class BollingerValue:
    upper: float
    middle: float
    lower: float
    width: float


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Indicator values at one candle index.

    A field is None (or absent from the sma/ema maps) when the indicator
    does not have enough history at that index.
    """

    rsi: float | None = None
    rsi_short: float | None = None
    connors_rsi: float | None = None
    sma: dict[int, float] = field(default_factory=dict)
    ema: dict[int, float] = field(default_factory=dict)
    macd: MacdValue | None = None
    bollinger: BollingerValue | None = None
    atr: float | None = None
    adx: float | None = None
    vwap_proxy: float | None = None
    obv_proxy: float | None = None

    def available(self) -> list[str]:
        """Names of indicator fields that hold a value."""
        names = []
        for name in (
            "rsi", "rsi_short", "connors_rsi", "macd", "bollinger",
            "atr", "adx", "vwap_proxy", "obv_proxy",
        ):
            if getattr(self, name) is not None:
                names.append(name)
        if self.sma:
            names.append("sma")
        if self.ema:
            names.append("ema")
        return names


@dataclass(frozen=True)
class PrecomputedIndicators:
    """Full-length indicator series for one candle sequence."""

    length: int
    rsi: list[float | None]
    rsi_short: list[float | None]
    connors_rsi: list[float | None]
    sma: dict[int, list[float | None]]
    ema: dict[int, list[float | None]]
    macd: MacdSeries
    bollinger: BollingerSeries
    atr: list[float | None]
    adx: list[float | None]
    vwap_proxy: list[float | None]
    obv_proxy: list[float | None]


def precompute_indicators(candles: Sequence[Candle]) -> PrecomputedIndicators:
    """Compute every indicator series once for the given candles."""
    closes = close_series(candles)
    highs = high_series(candles)
    lows = low_series(candles)
    volumes = volume_series(candles)

    return PrecomputedIndicators(
        length=len(candles),
        rsi=rsi_series(closes, RSI_PERIOD),
        rsi_short=rsi_series(closes, RSI_SHORT_PERIOD),
        connors_rsi=connors_rsi_series(closes),
        sma={period: sma(closes, period) for period in SMA_PERIODS},
        ema={period: ema(closes, period) for period in EMA_PERIODS},
        macd=macd(closes),
        bollinger=bollinger_bands(closes),
        atr=atr(highs, lows, closes, ATR_PERIOD),
        adx=adx(highs, lows, closes, ADX_PERIOD),
        vwap_proxy=vwap_proxy(highs, lows, closes, volumes),
        obv_proxy=obv_proxy(closes, volumes),
    )


def snapshot_at(pre: PrecomputedIndicators, index: int) -> IndicatorSnapshot:
    """Read the indicator values at index from precomputed series.

    Raises:
        IndexError: If index is outside the series.
    """
    if not 0 <= index < pre.length:
        raise IndexError(f"snapshot index {index} out of range for {pre.length} candles")

    macd_value = None
    m = pre.macd
    if m.histogram[index] is not None:
        macd_value = MacdValue(
            macd=m.macd[index],  # type: ignore[arg-type]
            signal=m.signal[index],  # type: ignore[arg-type]
            histogram=m.histogram[index],  # type: ignore[arg-type]
        )

    bollinger_value = None
    bb = pre.bollinger
    if bb.upper[index] is not None:
        bollinger_value = BollingerValue(
            upper=bb.upper[index],  # type: ignore[arg-type]
            middle=bb.middle[index],  # type: ignore[arg-type]
            lower=bb.lower[index],  # type: ignore[arg-type]
            width=bb.width[index],  # type: ignore[arg-type]
        )

    return IndicatorSnapshot(
        rsi=pre.rsi[index],
        rsi_short=pre.rsi_short[index],
        connors_rsi=pre.connors_rsi[index],
        sma={p: v for p, series in pre.sma.items() if (v := series[index]) is not None},
        ema={p: v for p, series in pre.ema.items() if (v := series[index]) is not None},
        macd=macd_value,
        bollinger=bollinger_value,
        atr=pre.atr[index],
        adx=pre.adx[index],
        vwap_proxy=pre.vwap_proxy[index],
        obv_proxy=pre.obv_proxy[index],
    )


def latest_snapshots(
    candles: Sequence[Candle],
) -> tuple[IndicatorSnapshot | None, IndicatorSnapshot | None]:
    """Snapshots at the last and second-to-last candle for live evaluation.

    Returns:
        (current, previous); either is None when there are too few candles.
    """
    if not candles:
        return None, None
    pre = precompute_indicators(candles)
    current = snapshot_at(pre, pre.length - 1)
    previous = snapshot_at(pre, pre.length - 2) if pre.length > 1 else None
    return current, previous
