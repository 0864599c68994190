"""
Referral Reward Engine.

Handles:
- The exactly-once referral reward transaction
- Optimistic concurrency on user records (doc_version)
- Bounded retry of the whole read-decide-write sequence on conflict
- Reward ledger lookups

Every attempt re-reads the subject and referrer with strongly consistent
reads, decides with referral_rules.decide_reward, and commits one
TransactWriteItems whose conditions re-check the versions it read. If any
of those records changed in between, DynamoDB cancels the whole
transaction and the attempt is retried from the reads.
"""

import logging
from typing import Optional

from boto3.dynamodb.types import TypeSerializer
from botocore.exceptions import BotoCoreError, ClientError

from .aws_clients import get_dynamodb, get_dynamodb_client
from .constants import REF_REWARDS_TABLE, REFERRAL_TXN_MAX_ATTEMPTS, USERS_TABLE
from .error_classification import classify_error, is_retryable
from .errors import (
    InvalidReferral,
    NotFoundError,
    TransactionConflictError,
    TransientStoreError,
)
from .referral_rules import RewardOutcome, WriteSet, decide_reward, referrer_to_read
from .retry import RetryConfig, retry_call
from .types import RewardLedgerEntry

logger = logging.getLogger(__name__)

REFERRAL_TXN_RETRY_CONFIG = RetryConfig(
    max_retries=REFERRAL_TXN_MAX_ATTEMPTS - 1,
    base_delay=0.05,
    max_delay=1.0,
    jitter_factor=0.5,
    retryable_exceptions=(TransactionConflictError,),
)

_serializer = TypeSerializer()


def _serialize(values: dict) -> dict:
    return {k: _serializer.serialize(v) for k, v in values.items()}


def _version_condition(version: Optional[int], values: dict) -> str:
    """Condition that the record still has the version we read."""
    if version is None:
        return "attribute_not_exists(doc_version)"
    values[":version"] = version
    return "doc_version = :version"


# ===========================================
# Transaction Building
# ===========================================


def build_transact_items(write_set: WriteSet) -> list[dict]:
    """
    Build the TransactItems for a reward.

    Three items commit together or not at all:
    - subject: reward_given=true (and referred_by if unset)
    - referrer: coins += amount, referral_count += 1
    - ledger: one entry keyed by the subject id
    """
    subject_values = {
        ":given": True,
        ":not_given": False,
        ":zero": 0,
        ":one": 1,
        ":now": write_set.created_at,
    }
    subject_sets = [
        "reward_given = :given",
        "doc_version = if_not_exists(doc_version, :zero) + :one",
        "updated_at = :now",
    ]
    if write_set.set_referred_by:
        subject_sets.append("referred_by = :referrer")
        subject_values[":referrer"] = write_set.referrer_id

    subject_condition = " AND ".join(
        [
            "attribute_exists(pk)",
            _version_condition(write_set.subject_version, subject_values),
            "(attribute_not_exists(reward_given) OR reward_given = :not_given)",
        ]
    )

    referrer_values = {
        ":zero": 0,
        ":one": 1,
        ":reward": write_set.amount,
        ":now": write_set.created_at,
    }
    referrer_condition = " AND ".join(
        [
            "attribute_exists(pk)",
            _version_condition(write_set.referrer_version, referrer_values),
        ]
    )

    return [
        {
            "Update": {
                "TableName": USERS_TABLE,
                "Key": _serialize({"pk": write_set.subject_id}),
                "UpdateExpression": "SET " + ", ".join(subject_sets),
                "ConditionExpression": subject_condition,
                "ExpressionAttributeValues": _serialize(subject_values),
            }
        },
        {
            "Update": {
                "TableName": USERS_TABLE,
                "Key": _serialize({"pk": write_set.referrer_id}),
                "UpdateExpression": (
                    "SET coins = if_not_exists(coins, :zero) + :reward, "
                    "referral_count = if_not_exists(referral_count, :zero) + :one, "
                    "doc_version = if_not_exists(doc_version, :zero) + :one, "
                    "updated_at = :now"
                ),
                "ConditionExpression": referrer_condition,
                "ExpressionAttributeValues": _serialize(referrer_values),
            }
        },
        {
            "Put": {
                "TableName": REF_REWARDS_TABLE,
                "Item": _serialize(write_set.ledger_entry()),
                "ConditionExpression": "attribute_not_exists(pk)",
            }
        },
    ]


# ===========================================
# Transaction Attempt
# ===========================================


def _read_user(user_id: str) -> Optional[dict]:
    """Consistent read of a user snapshot for the current attempt."""
    table = get_dynamodb().Table(USERS_TABLE)
    try:
        response = table.get_item(Key={"pk": user_id}, ConsistentRead=True)
    except (ClientError, BotoCoreError) as e:
        if is_retryable(e):
            raise TransactionConflictError(f"Read of {user_id} failed: {e}", details={"reason": "transient"}) from e
        raise
    return response.get("Item")


def _commit(write_set: WriteSet) -> None:
    items = build_transact_items(write_set)
    try:
        get_dynamodb_client().transact_write_items(TransactItems=items)
    except (ClientError, BotoCoreError) as e:
        kind = classify_error(e)
        if kind in ("conflict", "transient"):
            logger.info(
                f"Reward transaction for {write_set.subject_id} cancelled ({kind}): {e}",
                extra={"subject_user_id": write_set.subject_id, "reason": kind},
            )
            raise TransactionConflictError(
                f"Reward transaction for {write_set.subject_id} cancelled",
                details={"reason": kind},
            ) from e
        raise


def _attempt(subject_id: str, referral_token: Optional[str]) -> RewardOutcome:
    """One read-decide-write pass. Raises TransactionConflictError to be retried."""
    subject = _read_user(subject_id)

    referrer = None
    referrer_id = referrer_to_read(subject_id, subject, referral_token)
    if referrer_id is not None:
        referrer = _read_user(referrer_id)

    try:
        decision = decide_reward(subject_id, subject, referrer, referral_token)
    except NotFoundError as e:
        if e.key == subject_id:
            logger.warning(f"Subject {subject_id} has no user record, skipping reward")
            return RewardOutcome.SUBJECT_MISSING
        logger.info(f"Referrer {e.key} of {subject_id} does not exist, no reward")
        return RewardOutcome.NO_REFERRER
    except InvalidReferral:
        logger.warning(f"Self-referral rejected for {subject_id}")
        return RewardOutcome.SELF_REFERRAL

    if decision.write_set is None:
        return decision.outcome

    _commit(decision.write_set)
    logger.info(
        f"Referral reward: credited {decision.referrer_id} with "
        f"{decision.write_set.amount} for referred user {subject_id}",
        extra={
            "subject_user_id": subject_id,
            "referrer_user_id": decision.referrer_id,
            "amount": decision.write_set.amount,
        },
    )
    return RewardOutcome.REWARDED


# ===========================================
# Public API
# ===========================================


def process_referral(
    subject_user_id: str,
    referral_token: Optional[str] = None,
    config: Optional[RetryConfig] = None,
) -> RewardOutcome:
    """
    Credit the referrer of a user exactly once.

    Safe to call any number of times, concurrently, for the same user:
    only one call can ever return REWARDED.

    Args:
        subject_user_id: The referred user's id (record must already exist)
        referral_token: Referrer id from this event's /start payload
        config: Retry configuration (defaults to REFERRAL_TXN_RETRY_CONFIG)

    Returns:
        RewardOutcome

    Raises:
        TransientStoreError: If every attempt conflicted or failed transiently
    """
    config = config or REFERRAL_TXN_RETRY_CONFIG

    try:
        outcome = retry_call(_attempt, subject_user_id, referral_token, config=config)
    except TransactionConflictError as e:
        attempts = config.max_retries + 1
        raise TransientStoreError(
            f"Reward transaction for {subject_user_id} failed after {attempts} attempts",
            attempts=attempts,
        ) from e

    logger.info(
        f"Referral outcome for {subject_user_id}: {outcome.value}",
        extra={"subject_user_id": subject_user_id, "outcome": outcome.value},
    )
    return outcome


def get_reward_entry(subject_user_id: str) -> Optional[RewardLedgerEntry]:
    """
    Get the reward ledger entry for a referred user.

    Args:
        subject_user_id: Referred user's id

    Returns:
        Ledger entry or None if no reward was issued
    """
    table = get_dynamodb().Table(REF_REWARDS_TABLE)
    response = table.get_item(Key={"pk": subject_user_id}, ConsistentRead=True)
    return response.get("Item")
