"""Custom exceptions for the trendbot signal core.

Configuration problems fail fast through this hierarchy. Insufficient
history is never an error: indicators return None and templates hold.
"""


class TrendBotError(Exception):
    """Base exception for all trendbot errors."""


class ConfigurationError(TrendBotError):
    """Raised when strategy, sweep or live-map configuration is invalid."""


class UnknownTemplateError(ConfigurationError):
    """Raised when a template identifier is not in the catalog."""


class MissingParameterError(ConfigurationError):
    """Raised when a template is missing a required (finite) parameter."""


class InvalidWeightsError(ConfigurationError):
    """Raised when regime horizon weights do not sum to 1.0."""


class InsufficientSamplesError(ConfigurationError):
    """Raised when the empirical cost model has too few execution samples."""
