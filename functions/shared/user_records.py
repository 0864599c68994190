"""
User Record Repository.

Owns the schema and lifecycle of items in the users table:
- Creates a record with all default fields on the first /start
- Refreshes identity fields on every later /start
- Never touches referral or balance fields of an existing record

Balance and attribution fields are only changed by the referral engine
(referral_utils.process_referral).
"""

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from .aws_clients import get_dynamodb
from .constants import DEFAULT_DISPLAY_NAME, USER_DEFAULTS, USERS_TABLE
from .error_classification import get_error_code, is_retryable
from .errors import TransientStoreError
from .retry import DYNAMODB_RETRY_CONFIG, retry_call
from .types import UserRecord

logger = logging.getLogger(__name__)

ENSURE_USER_RETRY_CONFIG = replace(DYNAMODB_RETRY_CONFIG, retryable_exceptions=(TransientStoreError,))

# Refresh identity fields; backfill defaults only where missing
_REFRESH_EXPRESSION = (
    "SET display_name = :name, photo_url = :photo, frontend_opened = :opened, "
    "updated_at = :now, doc_version = if_not_exists(doc_version, :zero) + :one, "
    "coins = if_not_exists(coins, :zero), "
    "referral_count = if_not_exists(referral_count, :zero), "
    "tasks_completed = if_not_exists(tasks_completed, :zero), "
    "total_withdrawals = if_not_exists(total_withdrawals, :zero), "
    "reward_given = if_not_exists(reward_given, :not_given)"
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_new_user(
    user_id: str,
    display_name: Optional[str],
    photo_url: Optional[str] = None,
    referral_token: Optional[str] = None,
    now: Optional[str] = None,
) -> UserRecord:
    """
    Build the item written for a user seen for the first time.

    The referral token is recorded as referred_by unless it is empty or
    the user's own id.

    Args:
        user_id: Telegram user id
        display_name: First name from the update
        photo_url: Profile photo URL, if one was fetched
        referral_token: Token from the /start payload
        now: ISO timestamp (defaults to current UTC time)

    Returns:
        Complete user record
    """
    now = now or _now_iso()
    referred_by = referral_token if referral_token and referral_token != user_id else None

    item: UserRecord = {
        "pk": user_id,
        "id": user_id,
        "display_name": display_name or DEFAULT_DISPLAY_NAME,
        "photo_url": photo_url,
        "frontend_opened": True,
        "referred_by": referred_by,
        "doc_version": 1,
        "created_at": now,
        "updated_at": now,
    }
    item.update(USER_DEFAULTS)
    return item


def _raise_store_error(e: Exception, operation: str, user_id: str) -> None:
    """Re-raise retryable botocore errors as TransientStoreError, others unchanged."""
    if is_retryable(e):
        logger.warning(f"Transient store error during {operation} for {user_id}: {e}")
        raise TransientStoreError(f"{operation} failed for {user_id}: {e}") from e
    raise e


def _ensure_user_once(
    user_id: str,
    display_name: Optional[str],
    photo_url: Optional[str],
    referral_token: Optional[str],
) -> UserRecord:
    table = get_dynamodb().Table(USERS_TABLE)
    now = _now_iso()
    item = build_new_user(user_id, display_name, photo_url, referral_token, now)

    try:
        table.put_item(Item=item, ConditionExpression="attribute_not_exists(pk)")
        logger.info(
            f"Created user record {user_id}",
            extra={"user_id": user_id, "referred_by": item["referred_by"]},
        )
        return item
    except ClientError as e:
        if get_error_code(e) != "ConditionalCheckFailedException":
            _raise_store_error(e, "create_user", user_id)
    except BotoCoreError as e:
        _raise_store_error(e, "create_user", user_id)

    # Record already exists - refresh identity fields only
    try:
        response = table.update_item(
            Key={"pk": user_id},
            UpdateExpression=_REFRESH_EXPRESSION,
            ConditionExpression="attribute_exists(pk)",
            ExpressionAttributeValues={
                ":name": display_name or DEFAULT_DISPLAY_NAME,
                ":photo": photo_url,
                ":opened": True,
                ":now": now,
                ":zero": 0,
                ":one": 1,
                ":not_given": False,
            },
            ReturnValues="ALL_NEW",
        )
    except (ClientError, BotoCoreError) as e:
        _raise_store_error(e, "refresh_user", user_id)

    logger.debug(f"Refreshed user record {user_id}")
    return response["Attributes"]


def ensure_user(
    user_id: str,
    display_name: Optional[str],
    photo_url: Optional[str] = None,
    referral_token: Optional[str] = None,
) -> UserRecord:
    """
    Create the user record if missing, otherwise refresh its identity fields.

    Concurrent calls for the same user converge: only the first create
    wins the conditional put, every other call becomes a refresh.

    Args:
        user_id: Telegram user id
        display_name: First name from the update
        photo_url: Profile photo URL (None if unavailable)
        referral_token: Token from the /start payload, used only on creation

    Returns:
        The stored user record

    Raises:
        TransientStoreError: If the store kept failing after retries
    """
    return retry_call(
        _ensure_user_once,
        user_id,
        display_name,
        photo_url,
        referral_token,
        config=ENSURE_USER_RETRY_CONFIG,
    )


def get_user(user_id: str, consistent: bool = True) -> Optional[UserRecord]:
    """
    Get a user record.

    Args:
        user_id: Telegram user id
        consistent: Use a strongly consistent read

    Returns:
        User record or None if not found
    """
    table = get_dynamodb().Table(USERS_TABLE)
    response = table.get_item(Key={"pk": user_id}, ConsistentRead=consistent)
    return response.get("Item")
