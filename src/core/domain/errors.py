"""Error hierarchy.

Every error that crosses a layer boundary inherits from `DDSyncError` so the
CLI can render a clean message. Raw httpx exceptions are re-raised as
`RequestFailedError` by the HTTP adapter.

DDSyncError
├── RequestFailedError      transport failure after the retry budget
├── RateLimitedError        429 after the retry budget
├── APIError                non-success status
│   └── ResponseDecodeError malformed JSON body
├── InvalidIdentifierError  malformed resource id
├── StorageError            filesystem read/write failure
└── SelectionError          missing or conflicting selection criteria
"""

from __future__ import annotations


class DDSyncError(Exception):
    """Base exception for all dd-sync errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint: str | None = hint


class RequestFailedError(DDSyncError):
    """Raised when a request keeps failing at the transport level."""


class RateLimitedError(DDSyncError):
    """Raised when the API keeps answering 429 after every retry."""

    def __init__(self, retry_after: float, *, url: str | None = None) -> None:
        super().__init__(
            f"rate limited by server (retry after {retry_after:g}s)",
            hint="Lower HTTP_MAX_CONCURRENCY or raise HTTP_RETRIES.",
        )
        self.retry_after = retry_after
        self.url = url


class APIError(DDSyncError):
    """Raised when the API answers with a status the caller cannot use."""

    def __init__(self, message: str, *, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ResponseDecodeError(APIError):
    """Raised when a response body is not the JSON object we expect."""


class InvalidIdentifierError(DDSyncError):
    """Raised when a resource identifier fails validation."""


class StorageError(DDSyncError):
    """Raised when a resource cannot be read from or written to disk."""


class SelectionError(DDSyncError):
    """Raised when no (or more than one) selection criterion is given."""
