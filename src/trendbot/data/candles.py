"""Candle parsing, aggregation and the candle provider interface.

The provider is an abstract collaborator: the host supplies an
implementation backed by whatever storage it uses (CSV directories, a
database). InMemoryCandleProvider serves already-loaded datasets.
"""

import math
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence

from trendbot.data.models import Candle, CandleParseResult
from trendbot.logging import get_logger

logger = get_logger(__name__)

MINUTE_MS = 60_000


class CandleProvider(ABC):
    """Abstract source of ordered candle series keyed by token mint."""

    @abstractmethod
    def load_candles(
        self,
        mint: str,
        start_ms: int | None = None,
        end_ms: int | None = None,
    ) -> list[Candle]:
        """Return candles for mint ordered by timestamp, optionally bounded (inclusive)."""
        ...


class InMemoryCandleProvider(CandleProvider):
    """CandleProvider over a mapping of mint -> candles."""

    def __init__(self, candles_by_mint: Mapping[str, Sequence[Candle]]) -> None:
        self._candles = {
            mint: sorted(candles, key=lambda c: c.timestamp_ms)
            for mint, candles in candles_by_mint.items()
        }

    def load_candles(
        self,
        mint: str,
        start_ms: int | None = None,
        end_ms: int | None = None,
    ) -> list[Candle]:
        return [
            c
            for c in self._candles.get(mint, [])
            if (start_ms is None or c.timestamp_ms >= start_ms)
            and (end_ms is None or c.timestamp_ms <= end_ms)
        ]


def _to_float(value: object) -> float | None:
    try:
        result = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return result if math.isfinite(result) else None


def parse_candle_rows(rows: Iterable[Sequence[str]]) -> CandleParseResult:
    """Parse raw rows of (timestamp, open, high, low, close, volume_proxy).

    Rows with fewer than five fields, a non-finite timestamp/price or a
    non-positive price are skipped and counted. A missing or non-numeric
    volume becomes 0.

    Args:
        rows: Field sequences, e.g. from csv.reader with the header removed.

    Returns:
        CandleParseResult with candles sorted by timestamp.
    """
    candles: list[Candle] = []
    skipped = 0

    for row in rows:
        if len(row) < 5:
            skipped += 1
            continue
        ts, o, h, low, c = (_to_float(v) for v in row[:5])
        if ts is None or o is None or h is None or low is None or c is None:
            skipped += 1
            continue
        if min(o, h, low, c) <= 0:
            skipped += 1
            continue
        volume = _to_float(row[5]) if len(row) > 5 else None
        candles.append(
            Candle(
                timestamp_ms=int(ts),
                open=o,
                high=h,
                low=low,
                close=c,
                volume_proxy=volume if volume is not None else 0.0,
            )
        )

    if skipped:
        logger.debug("candle_rows_skipped", skipped=skipped, parsed=len(candles))

    candles.sort(key=lambda candle: candle.timestamp_ms)
    return CandleParseResult(candles=candles, skipped=skipped)


def aggregate_candles(candles: Sequence[Candle], interval_minutes: int) -> list[Candle]:
    """Merge candles into coarser buckets of interval_minutes.

    Each output bar is stamped with its bucket start. Open is the first
    bar's open, close the last bar's close, high/low the extremes, and
    volume_proxy the sum.

    Args:
        candles: Input candles ordered by timestamp.
        interval_minutes: Target bucket width. 1 or less returns a copy.

    Returns:
        Aggregated candles ordered by bucket.
    """
    if interval_minutes <= 1:
        return list(candles)

    bucket_ms = interval_minutes * MINUTE_MS
    result: list[Candle] = []
    current_bucket: int | None = None
    open_ = high = low = close = volume = 0.0

    for candle in candles:
        bucket = candle.timestamp_ms // bucket_ms
        if bucket != current_bucket:
            if current_bucket is not None:
                result.append(
                    Candle(current_bucket * bucket_ms, open_, high, low, close, volume)
                )
            current_bucket = bucket
            open_, high, low = candle.open, candle.high, candle.low
            close, volume = candle.close, candle.volume_proxy
        else:
            high = max(high, candle.high)
            low = min(low, candle.low)
            close = candle.close
            volume += candle.volume_proxy

    if current_bucket is not None:
        result.append(Candle(current_bucket * bucket_ms, open_, high, low, close, volume))

    return result


def close_series(candles: Sequence[Candle]) -> list[float]:
    return [c.close for c in candles]


def high_series(candles: Sequence[Candle]) -> list[float]:
    return [c.high for c in candles]


def low_series(candles: Sequence[Candle]) -> list[float]:
    return [c.low for c in candles]


def volume_series(candles: Sequence[Candle]) -> list[float]:
    return [c.volume_proxy for c in candles]
