# Shared utilities package
from .errors import InvalidReferral, NotFoundError, ReferralError, TransientStoreError
from .referral_rules import RewardOutcome, decide_reward
from .referral_utils import get_reward_entry, process_referral
from .user_records import ensure_user, get_user

__all__ = [
    "ensure_user",
    "get_user",
    "process_referral",
    "get_reward_entry",
    "decide_reward",
    "RewardOutcome",
    "ReferralError",
    "TransientStoreError",
    "NotFoundError",
    "InvalidReferral",
]
