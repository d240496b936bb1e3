"""Exception types shared across the counter service."""


class BrickCounterError(Exception):
    """Base class for errors raised by the counter service."""


class ConfigurationError(BrickCounterError):
    """Startup configuration is missing or invalid; the app must not serve."""


class PersistenceError(BrickCounterError):
    """The counter's persistence layer is unavailable or a query failed."""
