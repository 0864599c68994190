"""
Error taxonomy for the referral engine and the Telegram client.
"""

from typing import Optional


class ReferralError(Exception):
    """Base class for referral errors."""

    code = "referral_error"

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to a loggable dict."""
        body = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class TransientStoreError(ReferralError):
    """Raised when the store kept failing after all retry attempts.

    The transaction is all-or-nothing, so nothing was credited.
    """

    code = "transient_store_error"

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message, details={"attempts": attempts})
        self.attempts = attempts


class TransactionConflictError(ReferralError):
    """A single transaction attempt was cancelled by a concurrent writer."""

    code = "transaction_conflict"


class NotFoundError(ReferralError):
    """Raised when a subject or referrer record is absent."""

    code = "not_found"

    def __init__(self, collection: str, key: str):
        super().__init__(
            f"No record '{key}' in {collection}",
            details={"collection": collection, "key": key},
        )
        self.collection = collection
        self.key = key


class InvalidReferral(ReferralError):
    """Raised for a self-referral."""

    code = "invalid_referral"

    def __init__(self, user_id: str):
        super().__init__(f"User {user_id} cannot refer themselves", details={"user_id": user_id})
        self.user_id = user_id


class TelegramAPIError(Exception):
    """Raised when a Bot API call fails or answers ok=false."""

    def __init__(
        self,
        method: str,
        description: str,
        status_code: Optional[int] = None,
    ):
        self.method = method
        self.description = description
        self.status_code = status_code
        super().__init__(f"Telegram {method} failed ({status_code}): {description}")
