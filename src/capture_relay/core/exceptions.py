"""Application-wide exception hierarchy for capture-relay.

All custom exceptions subclass ``CaptureRelayError``, enabling
consistent error handling and structured logging across the relay.

Hierarchy::

    CaptureRelayError
    ├── MissingAuthError
    │   └── CredentialRejectedError   (status_code: int)
    ├── CredentialFetchError          (status_code: int | None)
    ├── NetworkError                  (url, status_code)
    ├── RelayUnreachableError         (tab_id)
    ├── UploadError                   (key, status_code)
    └── RecordSyncError               (status_code)

Only :class:`MissingAuthError` (and its subclass) is allowed to end a
pipeline run early.  Every other error is converted into a per-item
original-URL fallback at the pipeline boundary.
"""

from __future__ import annotations


class CaptureRelayError(Exception):
    """Base class for all capture-relay exceptions.

    All application-specific exceptions inherit from this class so that
    callers can catch the entire hierarchy with a single ``except`` clause
    when needed.
    """


# ---------------------------------------------------------------------------
# Credential exceptions
# ---------------------------------------------------------------------------


class MissingAuthError(CaptureRelayError):
    """Raised when no usable access key is configured for the credential endpoint.

    This is fatal for a whole pipeline run: every item would fail the
    credential step in exactly the same way, so the pipeline surfaces it once
    and stops issuing relay requests.
    """

    def __init__(self, message: str = "No API key configured; set one in the settings first") -> None:
        super().__init__(message)


class CredentialRejectedError(MissingAuthError):
    """Raised when the credential endpoint rejects the configured access key.

    Args:
        status_code: HTTP status returned by the endpoint (401 or 403).
    """

    def __init__(self, status_code: int) -> None:
        super().__init__(f"API key rejected by the credential endpoint (HTTP {status_code})")
        self.status_code = status_code


class CredentialFetchError(CaptureRelayError):
    """Raised when an upload credential could not be fetched or parsed.

    Args:
        message: Human-readable description of the failure.
        status_code: HTTP status code, or ``None`` on transport failure.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Relay exceptions
# ---------------------------------------------------------------------------


class NetworkError(CaptureRelayError):
    """Raised when a single download attempt fails.

    Transient and per-attempt: the relay router records it and moves on to
    the next fetch strategy.

    Args:
        message: Human-readable description of the failure.
        url: The URL that was being fetched.
        status_code: HTTP status code, or ``None`` on transport failure.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class RelayUnreachableError(CaptureRelayError):
    """Raised when the origin tab needed for a page-context fetch is gone.

    A closed or navigated tab is an ordinary, expected condition, not a bug.

    Args:
        message: Human-readable description.
        tab_id: Opaque id of the tab that could not be reached.
    """

    def __init__(self, message: str, tab_id: str | None = None) -> None:
        super().__init__(message)
        self.tab_id = tab_id


# ---------------------------------------------------------------------------
# Upload / sync exceptions
# ---------------------------------------------------------------------------


class UploadError(CaptureRelayError):
    """Raised when the object storage backend rejects a write.

    Args:
        message: Human-readable description.
        key: Storage key that was being written.
        status_code: HTTP status code, or ``None`` on transport failure.
    """

    def __init__(
        self,
        message: str,
        key: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.key = key
        self.status_code = status_code


class RecordSyncError(CaptureRelayError):
    """Raised when the record sync endpoint does not accept a record.

    Args:
        message: Server-provided or transport error message.
        status_code: HTTP status code, or ``None`` on transport failure.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
