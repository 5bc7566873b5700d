"""Shared enums used across the indicator, backtest and strategy layers."""

from enum import Enum


class Signal(str, Enum):
    """Decision produced by a strategy for one bar."""

    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


class TrendRegime(str, Enum):
    """Coarse trend classification of a token."""

    UPTREND = "uptrend"
    SIDEWAYS = "sideways"
    DOWNTREND = "downtrend"


class ExitMode(str, Enum):
    """How open positions are exited.

    INDICATOR honours the template's sell signal plus stop-loss/take-profit.
    PRICE exits only through the stop-loss/take-profit bounds.
    """

    INDICATOR = "indicator"
    PRICE = "price"
