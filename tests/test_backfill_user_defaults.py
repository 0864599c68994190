"""
Tests for scripts/backfill_user_defaults.py - default field backfill for user records.
"""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "scripts"))

from backfill_user_defaults import backfill, build_backfill_update, missing_defaults


class TestMissingDefaults:
    def test_complete_record(self):
        item = {"pk": "U1", "coins": 5, "referral_count": 1, "tasks_completed": 0, "total_withdrawals": 0, "reward_given": True}
        assert missing_defaults(item) == {}

    def test_legacy_record(self):
        assert missing_defaults({"pk": "U1", "coins": 5}) == {
            "referral_count": 0,
            "tasks_completed": 0,
            "total_withdrawals": 0,
            "reward_given": False,
        }


class TestBuildBackfillUpdate:
    def test_uses_if_not_exists(self):
        expression, values = build_backfill_update({"coins": 0, "reward_given": False})

        assert "coins = if_not_exists(coins, :coins)" in expression
        assert "reward_given = if_not_exists(reward_given, :reward_given)" in expression
        assert values[":coins"] == 0
        assert values[":reward_given"] is False


class TestBackfill:
    def test_dry_run_changes_nothing(self, users_table):
        users_table.put_item(Item={"pk": "U1", "id": "U1"})

        result = backfill(users_table, dry_run=True)

        assert result == {"scanned": 1, "pending": 1, "updated": 0, "errors": 0}
        assert "coins" not in users_table.get_item(Key={"pk": "U1"})["Item"]

    def test_fills_only_missing_fields(self, users_table, seed_user):
        seed_user("U1", coins=900)
        users_table.put_item(Item={"pk": "U2", "id": "U2", "coins": 40, "reward_given": True})

        result = backfill(users_table)

        assert result == {"scanned": 2, "pending": 1, "updated": 1, "errors": 0}
        legacy = users_table.get_item(Key={"pk": "U2"})["Item"]
        assert legacy["coins"] == 40
        assert legacy["reward_given"] is True
        assert legacy["referral_count"] == 0
        assert legacy["tasks_completed"] == 0
        assert legacy["total_withdrawals"] == 0
        assert legacy["doc_version"] == 1
        assert users_table.get_item(Key={"pk": "U1"})["Item"]["coins"] == 900
