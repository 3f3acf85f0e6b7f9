"""Error taxonomy for provider and backend operations."""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Machine-readable error categories."""

    NETWORK_ERROR = "network_error"
    NETWORK_TIMEOUT = "network_timeout"
    RATE_LIMITED = "rate_limited"
    AUTH_UNAUTHORIZED = "auth_unauthorized"
    AUTH_NO_CREDENTIALS = "auth_no_credentials"
    VALIDATION_INVALID_INPUT = "validation_invalid_input"
    VALIDATION_UNSUPPORTED = "validation_unsupported"
    VALIDATION_INVALID_RESPONSE = "validation_invalid_response"
    CONFLICT = "conflict"
    SYNC_FAILED = "sync_failed"
    SYNC_CANCELLED = "sync_cancelled"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


class BackendError(Exception):
    """Base exception for everything the engine and adapters raise.

    Attributes:
        code: Category of the failure
        is_retryable: Whether the same request may succeed on a later sync
        user_message: Text suitable for showing in a UI
    """

    default_code = ErrorCode.UNKNOWN
    default_retryable = False
    default_user_message = "Operation failed. Please try again."

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        is_retryable: bool | None = None,
        user_message: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code or self.default_code
        self.is_retryable = self.default_retryable if is_retryable is None else is_retryable
        self.user_message = user_message or self.default_user_message


class ValidationError(BackendError):
    """Bad input, rejected before anything is queued."""

    default_code = ErrorCode.VALIDATION_INVALID_INPUT
    default_user_message = "Invalid input. Please check and try again."

    def __init__(self, message: str, *, field: str | None = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.field = field


class UnsupportedOperationError(ValidationError):
    """The selected backend cannot perform this mutation."""

    default_code = ErrorCode.VALIDATION_UNSUPPORTED
    default_user_message = "This list does not support that action."


class NetworkError(BackendError):
    """Transient transport or server failure."""

    default_code = ErrorCode.NETWORK_ERROR
    default_retryable = True
    default_user_message = "Network error occurred. Please check your connection and try again."

    def __init__(self, message: str, *, status_code: int | None = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code


class RateLimitError(NetworkError):
    """The backend asked us to slow down."""

    default_code = ErrorCode.RATE_LIMITED
    default_user_message = "Rate limit exceeded. Please try again later."

    def __init__(self, message: str, *, retry_after: float | None = None, **kwargs) -> None:
        kwargs.setdefault("status_code", 429)
        super().__init__(message, **kwargs)
        self.retry_after = retry_after

    @classmethod
    def from_header(cls, value: str | None, message: str = "Rate limit exceeded") -> RateLimitError:
        """Build from a Retry-After header holding a number of seconds."""
        retry_after: float | None = None
        if value:
            try:
                retry_after = float(value)
            except ValueError:
                retry_after = None
        return cls(message, retry_after=retry_after)


class AuthError(BackendError):
    """Credentials are missing, invalid or expired. Sign-in is required."""

    default_code = ErrorCode.AUTH_UNAUTHORIZED
    default_user_message = "Authentication failed. Please sign in again."


class ConflictError(BackendError):
    """A command can never be applied: the retry ceiling was exceeded or
    the remote entity it targets is gone."""

    default_code = ErrorCode.CONFLICT
    default_user_message = "A change could not be saved and was reverted."


class SyncError(BackendError):
    """Generic synchronization failure."""

    default_code = ErrorCode.SYNC_FAILED
    default_user_message = "Synchronization failed. Please try again."


class SyncCancelledError(SyncError):
    """The sync belonged to a superseded provider generation."""

    default_code = ErrorCode.SYNC_CANCELLED


class ConfigurationError(BackendError):
    """Invalid provider selection or settings. Fatal at construction time."""

    default_code = ErrorCode.CONFIGURATION
    default_user_message = "The task backend is not configured correctly."


def wrap_error(error: BaseException, context: str) -> BackendError:
    """Convert an arbitrary exception into the taxonomy.

    BackendError instances pass through unchanged. Anything else is
    classified by its message and chained as ``__cause__``.
    """
    if isinstance(error, BackendError):
        return error

    message = f"{context} failed: {error}"
    text = str(error).lower()

    wrapped: BackendError
    if any(word in text for word in ("network", "timeout", "timed out", "offline", "connect")):
        wrapped = NetworkError(message)
    elif any(word in text for word in ("unauthorized", "401", "token", "auth")):
        wrapped = AuthError(message)
    elif any(word in text for word in ("invalid", "validation", "parse")):
        wrapped = ValidationError(message, code=ErrorCode.VALIDATION_INVALID_RESPONSE)
    else:
        wrapped = SyncError(message)
    wrapped.__cause__ = error
    return wrapped
