"""Tests for the idempotent XP ledger."""

from datetime import datetime, timezone

import pytest

from journey_ledger.db import Database, Transaction
from journey_ledger.exceptions import TransactionConflict, TransactionRetriesExhausted
from journey_ledger.ledger import (
    AwardResult,
    award_xp_once,
    get_xp_event,
    list_xp_events,
    xp_event_path,
)
from journey_ledger.stats import stats_path

# Wednesday of 2024-W01
NOW = datetime(2024, 1, 3, 12, 0, tzinfo=timezone.utc)
NEXT_WEEK = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db(tmp_path):
    """Create a temporary database for testing."""
    database = Database(db_path=tmp_path / "test.db")
    yield database
    database.close()


class TestPreconditions:
    @pytest.mark.parametrize(
        "uid, key, amount",
        [
            ("", "K", 10),
            ("u1", "", 10),
            ("u1", "K", 0),
            ("u1", "K", -5),
            ("u1", "a/b", 10),
            ("a/b", "K", 10),
            ("a/b/c", "K", 10),
            ("u1", "K", None),
            ("u1", "K", "10"),
            ("u1", "K", True),
        ],
    )
    def test_invalid_input_is_not_awarded(self, db, uid, key, amount):
        result = award_xp_once(db, uid, key, amount, now=NOW)
        assert result == AwardResult(awarded=False, level=None)

    def test_invalid_input_writes_nothing(self, db):
        award_xp_once(db, "u1", "K", 0, now=NOW)
        assert db.get(stats_path("u1")) is None
        assert db.get(xp_event_path("u1", "K")) is None

    def test_uid_with_slashes_writes_nothing(self, db):
        award_xp_once(db, "a/b/c", "K", 10, now=NOW)
        assert db.list_collection("users/a/b/c/stats") == []
        assert db.list_collection("users/a/b/c/xp_events") == []


class TestIdempotence:
    def test_same_key_applies_once(self, db):
        first = award_xp_once(db, "u1", "K", 10, now=NOW)
        second = award_xp_once(db, "u1", "K", 10, now=NOW)
        assert first.awarded is True
        assert second.awarded is False
        assert second.level is None
        assert db.get(stats_path("u1"))["allTimeXP"] == 10

    def test_different_keys_accumulate(self, db):
        award_xp_once(db, "u1", "A", 10, now=NOW)
        award_xp_once(db, "u1", "B", 15, now=NOW)
        stats = db.get(stats_path("u1"))
        assert stats["allTimeXP"] == 25
        assert stats["weeklyXP"] == 25

    def test_keys_are_per_user(self, db):
        award_xp_once(db, "u1", "K", 10, now=NOW)
        result = award_xp_once(db, "u2", "K", 10, now=NOW)
        assert result.awarded is True
        assert db.get(stats_path("u2"))["allTimeXP"] == 10

    def test_second_device_cannot_double_apply(self, db):
        other_device = Database(db_path=db.db_path)
        try:
            award_xp_once(db, "u1", "K", 10, now=NOW)
            result = award_xp_once(other_device, "u1", "K", 10, now=NOW)
        finally:
            other_device.close()
        assert result.awarded is False
        assert db.get(stats_path("u1"))["allTimeXP"] == 10


class TestAggregateUpdates:
    def test_creates_aggregate_lazily(self, db):
        result = award_xp_once(db, "u1", "K", 10, now=NOW)
        stats = db.get(stats_path("u1"))
        assert result == AwardResult(awarded=True, level=1)
        assert stats["allTimeXP"] == 10
        assert stats["weeklyXP"] == 10
        assert stats["weeklyKey"] == "2024-W01"
        assert stats["level"] == 1
        assert stats["levelName"] == "levels.beginner"
        assert stats["momentsCount"] == 0
        assert stats["streakDays"] == 0

    def test_crossing_threshold_levels_up(self, db):
        db.set(stats_path("u1"), {"allTimeXP": 40, "weeklyXP": 40, "weeklyKey": "2024-W01"})
        result = award_xp_once(db, "u1", "MOMENT_COMPLETED_2024-01-08", 10, now=NOW)
        stats = db.get(stats_path("u1"))
        assert result.awarded is True
        assert result.level == 2
        assert stats["allTimeXP"] == 50
        assert stats["weeklyXP"] == 50
        assert stats["level"] == 2
        assert stats["levelName"] == "levels.explorer"

    def test_weekly_xp_resets_on_new_week(self, db):
        db.set(stats_path("u1"), {"allTimeXP": 40, "weeklyXP": 40, "weeklyKey": "2024-W01"})
        award_xp_once(db, "u1", "K", 10, now=NEXT_WEEK)
        stats = db.get(stats_path("u1"))
        assert stats["weeklyXP"] == 10
        assert stats["weeklyKey"] == "2024-W02"
        assert stats["allTimeXP"] == 50

    def test_does_not_touch_reconciled_fields(self, db):
        db.set(stats_path("u1"), {
            "allTimeXP": 0, "weeklyXP": 0, "weeklyKey": "2024-W01",
            "momentsCount": 7, "streakDays": 3, "activeBadgeId": "first_steps",
        })
        award_xp_once(db, "u1", "K", 10, now=NOW)
        stats = db.get(stats_path("u1"))
        assert stats["momentsCount"] == 7
        assert stats["streakDays"] == 3
        assert stats["activeBadgeId"] == "first_steps"

    def test_missing_counters_treated_as_zero(self, db):
        db.set(stats_path("u1"), {"weeklyKey": "2024-W01"})
        award_xp_once(db, "u1", "K", 10, now=NOW)
        assert db.get(stats_path("u1"))["allTimeXP"] == 10


class TestXpEvents:
    def test_event_written(self, db):
        award_xp_once(db, "u1", "K", 10, {"dateKey": "2024-01-03"}, now=NOW)
        event = get_xp_event(db, "u1", "K")
        assert event["amount"] == 10
        assert event["weekKey"] == "2024-W01"
        assert event["metadata"] == {"dateKey": "2024-01-03"}
        assert event["createdAt"].startswith("2024-01-03T12:00:00")

    def test_metadata_defaults_to_empty(self, db):
        award_xp_once(db, "u1", "K", 10, now=NOW)
        assert get_xp_event(db, "u1", "K")["metadata"] == {}

    def test_duplicate_does_not_overwrite_event(self, db):
        award_xp_once(db, "u1", "K", 10, {"first": True}, now=NOW)
        award_xp_once(db, "u1", "K", 99, {"first": False}, now=NEXT_WEEK)
        event = get_xp_event(db, "u1", "K")
        assert event["amount"] == 10
        assert event["metadata"] == {"first": True}

    def test_list_events(self, db):
        award_xp_once(db, "u1", "B", 5, now=NOW)
        award_xp_once(db, "u1", "A", 10, now=NOW)
        events = list_xp_events(db, "u1")
        assert [e["key"] for e in events] == ["A", "B"]
        assert [e["amount"] for e in events] == [10, 5]

    def test_get_missing_event(self, db):
        assert get_xp_event(db, "u1", "nope") is None
        assert get_xp_event(db, "", "K") is None


class TestConflicts:
    def test_conflict_is_retried(self, db, monkeypatch):
        original_commit = Transaction.commit
        calls = []

        def flaky_commit(self):
            calls.append(1)
            if len(calls) == 1:
                raise TransactionConflict("users/u1/stats/main", 0, 1)
            return original_commit(self)

        monkeypatch.setattr(Transaction, "commit", flaky_commit)
        result = award_xp_once(db, "u1", "K", 10, now=NOW)
        assert result.awarded is True
        assert len(calls) == 2
        assert db.get(stats_path("u1"))["allTimeXP"] == 10

    def test_exhaustion_surfaces_transient_failure(self, db, monkeypatch):
        def always_conflict(self):
            raise TransactionConflict("users/u1/stats/main", 0, 1)

        monkeypatch.setattr(Transaction, "commit", always_conflict)
        with pytest.raises(TransactionRetriesExhausted) as exc_info:
            award_xp_once(db, "u1", "K", 10, now=NOW)
        assert exc_info.value.is_retryable is True
        assert db.get(stats_path("u1")) is None

    def test_retry_after_exhaustion_is_safe(self, db, monkeypatch):
        def always_conflict(self):
            raise TransactionConflict("users/u1/stats/main", 0, 1)

        with monkeypatch.context() as patched:
            patched.setattr(Transaction, "commit", always_conflict)
            with pytest.raises(TransactionRetriesExhausted):
                award_xp_once(db, "u1", "K", 10, now=NOW)

        assert award_xp_once(db, "u1", "K", 10, now=NOW).awarded is True
        assert award_xp_once(db, "u1", "K", 10, now=NOW).awarded is False
        assert db.get(stats_path("u1"))["allTimeXP"] == 10

    def test_max_attempts_override(self, db, monkeypatch):
        calls = []

        def always_conflict(self):
            calls.append(1)
            raise TransactionConflict("users/u1/stats/main", 0, 1)

        monkeypatch.setattr(Transaction, "commit", always_conflict)
        with pytest.raises(TransactionRetriesExhausted):
            award_xp_once(db, "u1", "K", 10, now=NOW, max_attempts=2)
        assert len(calls) == 2
