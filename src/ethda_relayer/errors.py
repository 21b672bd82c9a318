"""
Exception types for the ETH-DA relayer.
"""


class InvalidConfiguration(ValueError):
    """Raised when configuration values are missing or out of range."""


class TaskStateError(RuntimeError):
    """Raised when an interval task is started twice or after being stopped."""


class PinFailed(Exception):
    """Raised when the storage gateway does not return a usable pin result."""


class OrderFailed(Exception):
    """Raised when the target chain rejects or drops an order transaction."""


class ChainStalledError(RuntimeError):
    """Raised by the liveness watchdog when the source chain stops producing blocks."""
