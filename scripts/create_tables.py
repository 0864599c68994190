#!/usr/bin/env python3
"""Create the users and ref_rewards DynamoDB tables."""

import argparse
import sys
from pathlib import Path

import boto3
from botocore.exceptions import ClientError

sys.path.insert(0, str(Path(__file__).parent.parent / "functions"))

from shared.constants import REF_REWARDS_TABLE, USERS_TABLE


def table_definition(table_name: str) -> dict:
    """Both tables are keyed by a single string hash key (user id)."""
    return {
        "TableName": table_name,
        "KeySchema": [{"AttributeName": "pk", "KeyType": "HASH"}],
        "AttributeDefinitions": [{"AttributeName": "pk", "AttributeType": "S"}],
        "BillingMode": "PAY_PER_REQUEST",
    }


def create_table(dynamodb, table_name: str) -> bool:
    """Create one table; returns False if it already exists."""
    print(f"Creating {table_name}...")
    try:
        table = dynamodb.create_table(**table_definition(table_name))
    except ClientError as e:
        if e.response["Error"]["Code"] == "ResourceInUseException":
            print(f"  {table_name} already exists")
            return False
        raise
    table.wait_until_exists()
    print(f"  {table_name} is active")
    return True


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--users-table", default=USERS_TABLE)
    parser.add_argument("--rewards-table", default=REF_REWARDS_TABLE)
    args = parser.parse_args()

    dynamodb = boto3.resource("dynamodb")
    for name in (args.users_table, args.rewards_table):
        create_table(dynamodb, name)


if __name__ == "__main__":
    main()
