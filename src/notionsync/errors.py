"""Error hierarchy for notionsync.

Every error raised by the package inherits from :class:`NotionsyncError`.
Each carries a machine-readable ``code`` (from :class:`ErrorCode`), a
human-readable ``message``, an optional structured ``context`` dict, and an
optional ``cause`` (chained exception).

Remote failures are raised by the transport as typed errors.  The sync
executor never lets them escape: it turns each one into a per-operation
message on the :class:`~notionsync.models.SyncOutcome`.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Error code enum
# ---------------------------------------------------------------------------

class ErrorCode(str, Enum):
    """Machine-readable error codes for every error notionsync can raise."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    PERMISSION_ERROR = "PERMISSION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    RATE_LIMITED = "RATE_LIMITED"
    RETRY_EXHAUSTED = "RETRY_EXHAUSTED"
    NETWORK_ERROR = "NETWORK_ERROR"
    PRECONDITION_FAILED = "PRECONDITION_FAILED"
    SYNC_IN_PROGRESS = "SYNC_IN_PROGRESS"
    STALE_SESSION = "STALE_SESSION"
    CACHE_ERROR = "CACHE_ERROR"


# ---------------------------------------------------------------------------
# Base error
# ---------------------------------------------------------------------------

class NotionsyncError(Exception):
    """Base exception for all notionsync errors.

    Parameters
    ----------
    code:
        An :class:`ErrorCode` member, or any string, naming the error
        category.
    message:
        Human readable explanation.
    context:
        Structured diagnostic data.  Each subclass lists the keys it sets.
    cause:
        Lower-level exception this one was raised from, if any.
    """

    def __init__(
        self,
        code: str,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.code: str = code
        self.message: str = message
        self.context: dict[str, Any] = context or {}
        self.cause: Exception | None = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        ctx = f", context={self.context!r}" if self.context else ""
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r}{ctx})"


class _CodedError(NotionsyncError):
    """Helper base for subclasses with a fixed error code."""

    code_value: str = ""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=self.code_value,
            message=message,
            context=context,
            cause=cause,
        )


# ---------------------------------------------------------------------------
# API / transport errors
# ---------------------------------------------------------------------------

class NotionsyncValidationError(_CodedError):
    """Notion API returned 400, or a caller passed an invalid argument.

    Context keys: ``status_code``, ``notion_code``, ``body``.
    """

    code_value = ErrorCode.VALIDATION_ERROR


class NotionsyncAuthError(_CodedError):
    """Notion API returned 401: the integration token is invalid or expired.

    Context keys: ``status_code``, ``notion_code``.
    """

    code_value = ErrorCode.AUTH_ERROR


class NotionsyncPermissionError(_CodedError):
    """Notion API returned 403: the integration lacks access to the resource.

    Context keys: ``status_code``, ``operation``.
    """

    code_value = ErrorCode.PERMISSION_ERROR


class NotionsyncNotFoundError(_CodedError):
    """Notion API returned 404: the requested page or block does not exist.

    Context keys: ``status_code``, ``path``.
    """

    code_value = ErrorCode.NOT_FOUND


class NotionsyncConflictError(_CodedError):
    """Notion API returned 409: the resource was modified concurrently.

    Context keys: ``status_code``, ``notion_code``.
    """

    code_value = ErrorCode.CONFLICT


class NotionsyncRateLimitError(_CodedError):
    """Notion API returned 429 and the caller asked not to wait.

    Context keys: ``retry_after_seconds``, ``attempt``.
    """

    code_value = ErrorCode.RATE_LIMITED


class NotionsyncRetryExhaustedError(_CodedError):
    """A retryable request kept failing until the attempt budget ran out.

    Context keys: ``attempts``, ``last_status_code``.
    """

    code_value = ErrorCode.RETRY_EXHAUSTED


class NotionsyncNetworkError(_CodedError):
    """The request never got an HTTP response (timeout, DNS or connection failure).

    Context keys: ``url``, ``attempt``.
    """

    code_value = ErrorCode.NETWORK_ERROR


# ---------------------------------------------------------------------------
# Sync errors
# ---------------------------------------------------------------------------

class NotionsyncPreconditionError(_CodedError):
    """A sync plan was rejected before any remote call was issued.

    Context keys: ``page_id``, ``handle``.
    """

    code_value = ErrorCode.PRECONDITION_FAILED


class NotionsyncSyncInProgressError(_CodedError):
    """A second sync was requested for a page while one is in flight.

    Context keys: ``page_id``.
    """

    code_value = ErrorCode.SYNC_IN_PROGRESS


class NotionsyncStaleSessionError(_CodedError):
    """The session an async operation started from is no longer current.

    Context keys: ``handle``, ``generation``.
    """

    code_value = ErrorCode.STALE_SESSION


# ---------------------------------------------------------------------------
# Cache errors
# ---------------------------------------------------------------------------

class NotionsyncCacheError(_CodedError):
    """A local cache read or write failed.

    Cache errors are never fatal to a sync: the cache is a derived layer.

    Context keys: ``operation``, ``page_id``.
    """

    code_value = ErrorCode.CACHE_ERROR
