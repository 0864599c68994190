#!/usr/bin/env python3
"""
Backfill default fields on user records created before they existed.

Scans the users table and, for every record missing any of coins,
referral_count, tasks_completed, total_withdrawals or reward_given, sets the
missing fields to their defaults. Present values are never overwritten
(if_not_exists), so running it concurrently with live traffic is safe.
"""

import argparse
import sys
from datetime import datetime, timezone
from pathlib import Path

import boto3

# Add functions directory for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "functions"))

from shared.constants import USER_DEFAULTS, USERS_TABLE


def missing_defaults(item: dict) -> dict:
    """Default values for the fields this record lacks."""
    return {field: value for field, value in USER_DEFAULTS.items() if field not in item}


def build_backfill_update(missing: dict) -> tuple[str, dict]:
    """UpdateExpression and values that fill only the missing fields."""
    parts = ["doc_version = if_not_exists(doc_version, :zero) + :one", "updated_at = :now"]
    values = {
        ":zero": 0,
        ":one": 1,
        ":now": datetime.now(timezone.utc).isoformat(),
    }
    for field, value in missing.items():
        placeholder = f":{field}"
        parts.append(f"{field} = if_not_exists({field}, {placeholder})")
        values[placeholder] = value
    return "SET " + ", ".join(parts), values


def scan_users(table) -> list[dict]:
    users = []
    scan_kwargs = {}
    while True:
        response = table.scan(**scan_kwargs)
        users.extend(response.get("Items", []))

        if "LastEvaluatedKey" not in response:
            break
        scan_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        print(f"  Scanned {len(users)} users so far...")
    return users


def backfill(table, dry_run: bool = False) -> dict:
    """
    Backfill missing defaults.

    Returns:
        Counts of scanned, needing backfill, updated and failed records
    """
    users = scan_users(table)
    pending = [(item, missing_defaults(item)) for item in users]
    pending = [(item, missing) for item, missing in pending if missing]

    print(f"\nFound {len(pending)}/{len(users)} users missing default fields")

    updated = 0
    errors = 0
    for item, missing in pending:
        pk = item["pk"]
        if dry_run:
            print(f"  [dry-run] {pk}: would set {sorted(missing)}")
            continue
        update_expression, values = build_backfill_update(missing)
        try:
            table.update_item(
                Key={"pk": pk},
                UpdateExpression=update_expression,
                ConditionExpression="attribute_exists(pk)",
                ExpressionAttributeValues=values,
            )
            updated += 1
            if updated % 50 == 0:
                print(f"  Updated {updated}/{len(pending)}...")
        except Exception as e:
            print(f"  Error updating {pk}: {e}")
            errors += 1

    return {"scanned": len(users), "pending": len(pending), "updated": updated, "errors": errors}


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--dry-run", action="store_true", help="Only report what would change")
    parser.add_argument("--table", default=USERS_TABLE, help="Users table name")
    args = parser.parse_args()

    table = boto3.resource("dynamodb").Table(args.table)
    print(f"Scanning {args.table}...")
    result = backfill(table, dry_run=args.dry_run)

    print(f"\nDone: {result}")
    return 1 if result["errors"] else 0


if __name__ == "__main__":
    sys.exit(main())
