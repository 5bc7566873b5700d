"""Candle data models, parsing and aggregation."""

from trendbot.data.candles import (
    CandleProvider,
    InMemoryCandleProvider,
    aggregate_candles,
    close_series,
    high_series,
    low_series,
    parse_candle_rows,
    volume_series,
)
from trendbot.data.models import Candle, CandleParseResult, TokenDataset

__all__ = [
    "Candle",
    "CandleParseResult",
    "CandleProvider",
    "InMemoryCandleProvider",
    "TokenDataset",
    "aggregate_candles",
    "close_series",
    "high_series",
    "low_series",
    "parse_candle_rows",
    "volume_series",
]
