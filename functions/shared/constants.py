"""
Shared constants for the referral bot.
"""

import os

# Tables
USERS_TABLE = os.environ.get("USERS_TABLE", "users")
REF_REWARDS_TABLE = os.environ.get("REF_REWARDS_TABLE", "ref_rewards")

# Referral program
REFERRAL_REWARD = 500  # Coins credited to the referrer, once per referred user
REFERRAL_PREFIXES = ("ref_", "ref")  # Longest first
START_COMMAND = "/start"

# Default fields every user record must carry
USER_DEFAULTS = {
    "coins": 0,
    "referral_count": 0,
    "tasks_completed": 0,
    "total_withdrawals": 0,
    "reward_given": False,
}
DEFAULT_DISPLAY_NAME = "User"

# Transaction retry bound (attempts, not retries)
REFERRAL_TXN_MAX_ATTEMPTS = int(os.environ.get("REFERRAL_TXN_MAX_ATTEMPTS", "5"))

# External APIs
TELEGRAM_API = "https://api.telegram.org"

# Timeouts
TELEGRAM_TIMEOUT = 10.0
TELEGRAM_CONNECT_TIMEOUT = 5.0

# DynamoDB throttling error codes that should trigger retry
THROTTLING_ERRORS = (
    "ProvisionedThroughputExceededException",
    "RequestLimitExceeded",
    "ThrottlingException",
    "InternalServerError",
)

# Transaction cancellation codes meaning another writer got there first
CONFLICT_ERRORS = (
    "TransactionCanceledException",
    "TransactionConflictException",
    "TransactionInProgressException",
    "ConditionalCheckFailedException",
)
