"""
Referral reward decision rules.

Pure functions: given snapshots of the subject and referrer records (as read
inside one transaction attempt), decide whether a reward is due and what
must be written. No store access happens here, so every branch can be unit
tested with plain dicts.

Precedence:
1. Subject record missing                  -> NotFoundError (subject)
2. No stored referred_by and no usable token -> NO_REFERRER
3. Referrer is the subject itself           -> InvalidReferral
4. reward_given already true                -> ALREADY_REWARDED
5. Referrer record missing                  -> NotFoundError (referrer)
6. Otherwise                                -> REWARDED with a WriteSet
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from .constants import REFERRAL_REWARD, USERS_TABLE
from .errors import InvalidReferral, NotFoundError
from .types import RewardLedgerEntry


class RewardOutcome(str, Enum):
    REWARDED = "rewarded"
    ALREADY_REWARDED = "already_rewarded"
    NO_REFERRER = "no_referrer"
    SELF_REFERRAL = "self_referral"
    SUBJECT_MISSING = "subject_missing"


@dataclass(frozen=True)
class WriteSet:
    """Everything the reward transaction writes, plus the versions it read."""

    subject_id: str
    referrer_id: str
    subject_version: Optional[int]
    referrer_version: Optional[int]
    set_referred_by: bool
    amount: int
    created_at: str

    def ledger_entry(self) -> RewardLedgerEntry:
        return {
            "pk": self.subject_id,
            "subject_user_id": self.subject_id,
            "referrer_user_id": self.referrer_id,
            "amount": self.amount,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class RewardDecision:
    outcome: RewardOutcome
    referrer_id: Optional[str] = None
    write_set: Optional[WriteSet] = None


def _version(record: Optional[dict]) -> Optional[int]:
    if not record or record.get("doc_version") is None:
        return None
    return int(record["doc_version"])


def resolve_referrer(subject_id: str, subject: dict, token: Optional[str]) -> Optional[str]:
    """
    Effective referrer: the stored referred_by wins over the token.

    A token equal to the subject's own id is ignored.
    """
    stored = subject.get("referred_by")
    if stored:
        return str(stored)
    if token and token != subject_id:
        return token
    return None


def referrer_to_read(subject_id: str, subject: Optional[dict], token: Optional[str]) -> Optional[str]:
    """
    Id of the referrer record the transaction must read, or None when the
    decision can be made from the subject snapshot alone.
    """
    if subject is None or subject.get("reward_given"):
        return None
    referrer_id = resolve_referrer(subject_id, subject, token)
    if referrer_id is None or referrer_id == subject_id:
        return None
    return referrer_id


def decide_reward(
    subject_id: str,
    subject: Optional[dict],
    referrer: Optional[dict],
    token: Optional[str],
    now: Optional[str] = None,
) -> RewardDecision:
    """
    Decide the reward for one transaction attempt.

    Args:
        subject_id: Referred user's id
        subject: Subject snapshot (None if the record does not exist)
        referrer: Referrer snapshot (None if absent or not read)
        token: Referral token from this event
        now: ISO timestamp for the ledger entry

    Returns:
        RewardDecision; write_set is set only for REWARDED

    Raises:
        NotFoundError: Subject or referrer record missing
        InvalidReferral: Effective referrer is the subject
    """
    if subject is None:
        raise NotFoundError(USERS_TABLE, subject_id)

    referrer_id = resolve_referrer(subject_id, subject, token)
    if referrer_id is None:
        return RewardDecision(RewardOutcome.NO_REFERRER)

    if referrer_id == subject_id:
        raise InvalidReferral(subject_id)

    if subject.get("reward_given"):
        return RewardDecision(RewardOutcome.ALREADY_REWARDED, referrer_id)

    if referrer is None:
        raise NotFoundError(USERS_TABLE, referrer_id)

    write_set = WriteSet(
        subject_id=subject_id,
        referrer_id=referrer_id,
        subject_version=_version(subject),
        referrer_version=_version(referrer),
        set_referred_by=not subject.get("referred_by"),
        amount=REFERRAL_REWARD,
        created_at=now or datetime.now(timezone.utc).isoformat(),
    )
    return RewardDecision(RewardOutcome.REWARDED, referrer_id, write_set)
