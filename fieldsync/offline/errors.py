"""
Error taxonomy for offline writes.

Executors declare at their boundary whether a failure is worth retrying:
TransientError for lost connectivity, PermanentError for anything the
server rejected on its merits. is_transient() also recognizes the raw
requests/builtin connection errors for executors that don't wrap them.
"""
import requests

# HTTP statuses that mean "try again later" rather than "no"
TRANSIENT_STATUS_CODES = frozenset({408, 429, 502, 503, 504})


class OfflineSyncError(Exception):
    """Base class for offline queue and replay errors."""


class TransientError(OfflineSyncError):
    """The write did not reach the server; replaying it later may succeed."""


class PermanentError(OfflineSyncError):
    """The server (or local validation) rejected the write. Never queued."""

    def __init__(self, message, status_code=400):
        super().__init__(message)
        self.status_code = status_code


class PayloadValidationError(PermanentError):
    def __init__(self, message):
        super().__init__(message, status_code=400)


class UnknownActionError(PermanentError):
    def __init__(self, action):
        super().__init__(f"No handler registered for action: {action}", status_code=404)
        self.action = action


class ReplayInProgressError(OfflineSyncError):
    """Another replay pass already holds the replay lock."""

    status_code = 409


def is_transient(exc: BaseException) -> bool:
    """Return True when exc represents a retryable connectivity failure."""
    if isinstance(exc, TransientError):
        return True
    if isinstance(exc, OfflineSyncError):
        return False
    if isinstance(exc, (requests.exceptions.ConnectionError, requests.exceptions.Timeout,
                        requests.exceptions.ChunkedEncodingError)):
        return True
    if isinstance(exc, requests.exceptions.HTTPError):
        response = exc.response
        return response is not None and response.status_code in TRANSIENT_STATUS_CODES
    return isinstance(exc, (ConnectionError, TimeoutError))
