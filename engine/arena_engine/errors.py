"""
Error taxonomy for the Arena engine.

ConfigurationError aborts a tick before any state is touched.
DataUnavailableError and UpstreamFetchError are recovered per symbol.
StateInvariantViolation is fatal and never caught by engine code.
PersistenceError propagates to the tick caller; nothing is half-committed.
"""


class ArenaError(Exception):
    """Base class for all engine errors."""

    pass


class ConfigurationError(ArenaError):
    """Raised for missing tick parameters or an invalid strategy config."""

    pass


class InvalidSessionStateError(ConfigurationError):
    """Raised when an operation is not allowed in the session's current status."""

    def __init__(self, message: str, session_id: str | None = None, status: str | None = None):
        super().__init__(message)
        self.session_id = session_id
        self.status = status


class SessionClosedError(InvalidSessionStateError):
    """Raised when a snapshot is offered to a completed session."""

    pass


class OutOfOrderTickError(ConfigurationError):
    """Raised when a tick timestamp is not after the session's last snapshot."""

    def __init__(self, message: str, timestamp: int, last_timestamp: int):
        super().__init__(message)
        self.timestamp = timestamp
        self.last_timestamp = last_timestamp


class SessionNotFoundError(ArenaError):
    """Raised when a session ID is unknown."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class DataUnavailableError(ArenaError):
    """Raised when no quote or indicator exists for a symbol at a timestamp."""

    def __init__(self, symbol: str, timestamp: int | None = None):
        msg = f"No data for {symbol}"
        if timestamp is not None:
            msg += f" at {timestamp}"
        super().__init__(msg)
        self.symbol = symbol
        self.timestamp = timestamp


class UpstreamFetchError(ArenaError):
    """Raised when the upstream market data source fails for a symbol."""

    def __init__(self, message: str, symbol: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.symbol = symbol
        self.status_code = status_code


class StateInvariantViolation(ArenaError):
    """Raised when a trade would break cash or holdings invariants."""

    pass


class PersistenceError(ArenaError):
    """Raised when the key/value store cannot be read or written."""

    pass
