class ConfigurationError(ValueError):
    """Raised when a run cannot start because its input is invalid."""


class TransportError(Exception):
    """A request never produced an HTTP response (timeout, reset, browser crash)."""
