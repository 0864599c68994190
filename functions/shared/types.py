"""
Shared Type Definitions for Lambda Handlers.

Provides TypedDict definitions for the API Gateway event, Telegram updates
and the two persisted record shapes.
"""

from typing import Any, Optional, TypedDict


class APIGatewayEvent(TypedDict, total=False):
    """API Gateway proxy event structure."""

    httpMethod: str
    headers: dict[str, str]
    body: Optional[str]
    requestContext: dict[str, Any]
    path: str
    isBase64Encoded: bool


class LambdaResponse(TypedDict):
    """Standard Lambda response structure."""

    statusCode: int
    headers: dict[str, str]
    body: str


class TelegramUser(TypedDict, total=False):
    """Bot API User object (fields we read)."""

    id: int
    is_bot: bool
    first_name: str
    username: str
    language_code: str


class TelegramChat(TypedDict, total=False):
    id: int
    type: str


# "from" is a keyword, so Message uses the functional syntax
TelegramMessage = TypedDict(
    "TelegramMessage",
    {
        "message_id": int,
        "from": TelegramUser,
        "chat": TelegramChat,
        "text": str,
        "date": int,
    },
    total=False,
)


class TelegramUpdate(TypedDict, total=False):
    update_id: int
    message: TelegramMessage


class UserRecord(TypedDict, total=False):
    """Item in the users table."""

    pk: str
    id: str
    display_name: str
    photo_url: Optional[str]
    frontend_opened: bool
    coins: int
    referral_count: int
    referred_by: Optional[str]
    reward_given: bool
    tasks_completed: int
    total_withdrawals: int
    doc_version: int
    created_at: str
    updated_at: str


class RewardLedgerEntry(TypedDict):
    """Item in the ref_rewards table (one per referred user)."""

    pk: str
    subject_user_id: str
    referrer_user_id: str
    amount: int
    created_at: str
