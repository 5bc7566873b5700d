"""Data models for candle series.

Prices are plain floats. Candle data is already materialized in memory by
the time it reaches the core; nothing here performs I/O.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Candle:
    """A single fixed-interval OHLC bar.

    volume_proxy is the number of price observations in the bucket; true
    traded volume is not available from the price poller.
    """

    timestamp_ms: int
    open: float
    high: float
    low: float
    close: float
    volume_proxy: float = 0.0


@dataclass
class TokenDataset:
    """Candle history for one token."""

    mint: str
    label: str
    candles: list[Candle] = field(default_factory=list)


@dataclass
class CandleParseResult:
    """Parsed candles plus the number of rows that were skipped as malformed."""

    candles: list[Candle]
    skipped: int = 0
