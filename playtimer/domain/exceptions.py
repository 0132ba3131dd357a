"""Exceptions raised by PlayTimer services."""

TRY_AGAIN_LATER = "Playtime data is unavailable right now. Please try again later."


class PlayTimerError(RuntimeError):
    """Base class for domain exceptions."""


class StorageError(PlayTimerError):
    """Raised when a storage backend fails (I/O, connectivity, constraints)."""

    def __init__(self, cause: str) -> None:
        super().__init__(cause)
        self.cause = cause


class ConfigError(PlayTimerError):
    """Raised for missing or malformed settings."""


class ValidationError(PlayTimerError):
    """Raised when a request carries invalid input."""


class ServiceUnavailable(PlayTimerError):
    """Raised by query operations when the backing store cannot answer."""

    def __init__(self, message: str = TRY_AGAIN_LATER) -> None:
        super().__init__(message)
        self.user_message = message
