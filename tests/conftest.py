"""
Shared pytest fixtures for referral bot tests.
"""

import os
import sys
import threading
from unittest.mock import patch

import boto3
import pytest
from botocore.client import BaseClient
from moto import mock_aws

# Add functions directory to Python path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "functions"))


def pytest_configure(config):
    """Set AWS credentials before test collection.

    This runs before test collection starts, ensuring boto3 resource
    creation during imports doesn't fail with NoRegionError.
    """
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
    os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
    os.environ.setdefault("AWS_REGION", "us-east-1")

    # New httpx client per call so tests can swap the transport
    os.environ["USE_CONNECTION_POOLING"] = "false"


@pytest.fixture(autouse=True)
def aws_credentials():
    """Set fake AWS credentials for all tests."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
    os.environ["AWS_REGION"] = "us-east-1"


@pytest.fixture(autouse=True)
def reset_aws_clients():
    """Reset shared AWS client singletons between tests."""
    yield
    try:
        from shared.aws_clients import reset_clients
        reset_clients()
    except ImportError:
        pass


@pytest.fixture(autouse=True)
def reset_telegram_state():
    """Reset the cached HTTP client, bot token and webhook secret between tests."""
    yield
    try:
        from shared.telegram_client import reset_client
        reset_client()
    except ImportError:
        pass
    try:
        import api.telegram_webhook as telegram_webhook
        telegram_webhook._webhook_secret_cache = None
        telegram_webhook._webhook_secret_cache_time = 0.0
    except ImportError:
        pass


def create_dynamodb_tables(dynamodb):
    """Create the users and ref_rewards tables.

    Args:
        dynamodb: boto3 DynamoDB resource
    """
    for table_name in ("users", "ref_rewards"):
        dynamodb.create_table(
            TableName=table_name,
            KeySchema=[{"AttributeName": "pk", "KeyType": "HASH"}],
            AttributeDefinitions=[{"AttributeName": "pk", "AttributeType": "S"}],
            BillingMode="PAY_PER_REQUEST",
        )


@pytest.fixture
def mock_dynamodb():
    """Provide mocked DynamoDB with the bot's tables."""
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name="us-east-1")
        create_dynamodb_tables(dynamodb)
        yield dynamodb


@pytest.fixture
def serialized_aws_calls():
    """Run every boto call under one lock.

    moto's in-memory DynamoDB is not thread-safe: concurrent condition
    checks and transaction rollbacks race inside it. Serializing the calls
    keeps each request atomic, as it is in DynamoDB, while threads still
    interleave between requests.
    """
    lock = threading.RLock()
    original = BaseClient._make_api_call

    def locked_call(self, operation_name, api_params):
        with lock:
            return original(self, operation_name, api_params)

    with patch.object(BaseClient, "_make_api_call", locked_call):
        yield lock


@pytest.fixture
def users_table(mock_dynamodb):
    return mock_dynamodb.Table("users")


@pytest.fixture
def rewards_table(mock_dynamodb):
    return mock_dynamodb.Table("ref_rewards")


@pytest.fixture
def seed_user(users_table):
    """Insert a user record with default fields; overrides win."""

    def _seed(user_id: str, **overrides):
        item = {
            "pk": user_id,
            "id": user_id,
            "display_name": f"User {user_id}",
            "photo_url": None,
            "frontend_opened": True,
            "coins": 0,
            "referral_count": 0,
            "referred_by": None,
            "reward_given": False,
            "tasks_completed": 0,
            "total_withdrawals": 0,
            "doc_version": 1,
            "created_at": "2024-01-01T00:00:00+00:00",
            "updated_at": "2024-01-01T00:00:00+00:00",
        }
        item.update(overrides)
        users_table.put_item(Item=item)
        return item

    return _seed


def make_start_update(
    user_id: int,
    text: str = "/start",
    first_name: str = "Alice",
    update_id: int = 1000,
    is_bot: bool = False,
) -> dict:
    """Build a Telegram Update carrying a /start message."""
    return {
        "update_id": update_id,
        "message": {
            "message_id": 1,
            "date": 1700000000,
            "text": text,
            "chat": {"id": user_id, "type": "private"},
            "from": {"id": user_id, "is_bot": is_bot, "first_name": first_name},
        },
    }
