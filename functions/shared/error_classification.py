"""
Shared error classification for store retry decisions.

Centralizes how botocore failures are mapped to retry decisions so the
referral engine and the repository agree on what is worth retrying.
"""

from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from .constants import CONFLICT_ERRORS, THROTTLING_ERRORS

# Network-level failures - worth retrying
TRANSIENT_EXCEPTIONS = (
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

# Message fragments for errors that carry no useful code
TRANSIENT_PATTERNS = [
    "timeout",
    "timed out",
    "503",
    "502",
    "504",
    "rate limit",
    "too many requests",
    "connection reset",
    "connection refused",
    "service unavailable",
]


def get_error_code(error: Exception) -> str:
    """Return the AWS error code of a ClientError, or empty string."""
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code", "")
    return ""


def classify_error(error: Exception) -> str:
    """
    Classify a store error for retry decisions.

    Args:
        error: Exception raised by a boto3 call

    Returns:
        "conflict" - another writer won; re-read and decide again
        "transient" - throttling or network failure; retry after backoff
        "permanent" - don't retry
    """
    code = get_error_code(error)

    if code in CONFLICT_ERRORS:
        return "conflict"

    if code in THROTTLING_ERRORS:
        return "transient"

    if isinstance(error, TRANSIENT_EXCEPTIONS):
        return "transient"

    if not code:
        message = str(error).lower()
        for pattern in TRANSIENT_PATTERNS:
            if pattern in message:
                return "transient"

    return "permanent"


def is_retryable(error: Exception) -> bool:
    """True for conflicts and transient failures."""
    return classify_error(error) in ("conflict", "transient")
