"""
Custom exceptions for app-data sync.

Every component raises these exceptions so the hosting application
can handle configuration, auth, network and parse failures uniformly.
"""


class DriveSyncError(Exception):
    """Base exception for all sync errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(DriveSyncError):
    """Raised when configuration is missing or malformed."""

    def __init__(self, message: str, path: str | None = None):
        details = {}
        if path:
            details["path"] = path
        super().__init__(message, details)
        self.path = path


class InitializationError(DriveSyncError):
    """Raised when the auth provider library never becomes ready."""

    def __init__(self, reason: str, cause: Exception | None = None):
        details = {"reason": reason}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Initialization failed: {reason}", details)
        self.reason = reason
        self.cause = cause


class AuthenticationError(DriveSyncError):
    """Raised when authentication with the remote provider fails."""

    def __init__(self, provider: str, reason: str | None = None):
        details = {"provider": provider}
        if reason:
            details["reason"] = reason
        message = f"Authentication failed for {provider}"
        if reason:
            message += f": {reason}"
        super().__init__(message, details)
        self.provider = provider
        self.reason = reason


class RemoteRequestError(DriveSyncError):
    """Raised when a remote provider call fails."""

    def __init__(
        self,
        operation: str,
        status: int | None = None,
        cause: Exception | str | None = None,
    ):
        details: dict = {"operation": operation}
        if status is not None:
            details["status"] = status
        if cause:
            details["cause"] = str(cause)
        message = f"Remote request failed during {operation}"
        if status is not None:
            message += f" (HTTP {status})"
        super().__init__(message, details)
        self.operation = operation
        self.status = status
        self.cause = cause


class RemoteFileNotFoundError(RemoteRequestError):
    """Raised when the remote file no longer exists (HTTP 404)."""

    def __init__(self, operation: str, file_id: str | None = None):
        super().__init__(operation, status=404)
        if file_id:
            self.details["file_id"] = file_id
        self.file_id = file_id


class SnapshotParseError(DriveSyncError):
    """Raised when a foreign snapshot cannot be decoded."""

    def __init__(self, source: str, cause: Exception | None = None):
        details = {"source": source}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Malformed snapshot from {source}", details)
        self.source = source
        self.cause = cause


class StorageIOError(DriveSyncError):
    """Raised when a persistent store I/O operation fails."""

    def __init__(self, operation: str, path: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Storage I/O error during {operation}"
        if path:
            message += f": {path}"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause


class ValidationError(DriveSyncError):
    """Raised when input validation fails."""

    def __init__(self, field: str, reason: str):
        super().__init__(
            f"Validation failed for {field}: {reason}",
            {"field": field, "reason": reason},
        )
        self.field = field
        self.reason = reason
