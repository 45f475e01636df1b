"""Exceptions raised by bakesync."""


class SyncError(Exception):
    """Base class for all bakesync errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def wrap(self, context: str) -> "SyncError":
        """Return a new error of the same type with its message prefixed by context.

        Bulk operations use this to add detail while keeping the error type,
        so callers can still catch e.g. RemoteError after a failed restore.
        """
        return type(self)(f"{context}: {self.message}")

    def __str__(self) -> str:
        return self.message


class ConfigurationError(SyncError):
    """GitHub settings are missing or invalid."""


class RemoteError(SyncError):
    """The storage API answered with a non-success status."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(message)

    def wrap(self, context: str) -> "RemoteError":
        return type(self)(self.status_code, f"{context}: {self.message}")

    def __str__(self) -> str:
        return f"GitHub API error {self.status_code}: {self.message}"


class ConflictError(RemoteError):
    """A conditional write was rejected because the document changed."""


class NotFoundError(SyncError):
    """A record id was not present in its sequence document."""


class ValidationError(SyncError):
    """A payload does not have the expected shape."""
