"""trendbot: indicator, backtest, sweep and trend-regime core for token strategies."""

__version__ = "0.1.0"
