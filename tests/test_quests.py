"""Tests for daily quests and per-moment grants."""

from datetime import datetime, timezone

import pytest

from journey_ledger.db import Database
from journey_ledger.ledger import get_xp_event
from journey_ledger.quests import (
    award_moment_xp,
    has_moment_on,
    moment_quest_key,
    reconcile_daily_quests,
)
from journey_ledger.stats import stats_path

NOW = datetime(2024, 1, 3, 21, 0, tzinfo=timezone.utc)


@pytest.fixture
def db(tmp_path):
    """Create a temporary database for testing."""
    database = Database(db_path=tmp_path / "test.db")
    yield database
    database.close()


def complete_reflection(db, date_key):
    db.set(f"users/u1/daily_reflections/{date_key}", {"dateKey": date_key, "completed": True})


class TestHasMomentOn:
    def test_matches_utc_date(self, db):
        db.set("users/u1/moments/m1", {"createdAt": "2024-01-03T23:30:00Z"})
        assert has_moment_on(db, "u1", "2024-01-03") is True
        assert has_moment_on(db, "u1", "2024-01-04") is False

    def test_ignores_undated(self, db):
        db.set("users/u1/moments/m1", {"emotion": "calm"})
        assert has_moment_on(db, "u1", "2024-01-03") is False


class TestReconcileDailyQuests:
    def test_nothing_done(self, db):
        result = reconcile_daily_quests(db, "u1", "2024-01-03", now=NOW)
        assert result.moment_logged is False
        assert result.reflections_completed is False
        assert result.awards == {}
        assert db.get(stats_path("u1")) is None

    def test_both_quests(self, db):
        db.set("users/u1/moments/m1", {"createdAt": "2024-01-03T09:00:00Z"})
        complete_reflection(db, "2024-01-03")
        result = reconcile_daily_quests(db, "u1", "2024-01-03", now=NOW)
        assert result.awards["DAILY_REFLECTIONS_COMPLETED_2024-01-03"].awarded is True
        assert result.awards[moment_quest_key("2024-01-03")].awarded is True
        assert db.get(stats_path("u1"))["allTimeXP"] == 25

    def test_rerun_awards_nothing(self, db):
        db.set("users/u1/moments/m1", {"createdAt": "2024-01-03T09:00:00Z"})
        complete_reflection(db, "2024-01-03")
        reconcile_daily_quests(db, "u1", "2024-01-03", now=NOW)
        result = reconcile_daily_quests(db, "u1", "2024-01-03", now=NOW)
        assert not any(award.awarded for award in result.awards.values())
        assert db.get(stats_path("u1"))["allTimeXP"] == 25

    def test_incomplete_reflection(self, db):
        db.set("users/u1/daily_reflections/2024-01-03", {"completed": False})
        result = reconcile_daily_quests(db, "u1", "2024-01-03", now=NOW)
        assert result.reflections_completed is False

    def test_moment_quest_metadata(self, db):
        db.set("users/u1/moments/m1", {"createdAt": "2024-01-03T09:00:00Z"})
        reconcile_daily_quests(db, "u1", "2024-01-03", now=NOW)
        event = get_xp_event(db, "u1", "MOMENT_COMPLETED_2024-01-03")
        assert event["amount"] == 10
        assert event["metadata"] == {"dateKey": "2024-01-03"}


class TestAwardMomentXp:
    def test_base_grant(self, db):
        awards = award_moment_xp(db, "u1", "evt1", now=NOW)
        assert list(awards) == ["MOMENT_COMPLETED_evt1"]
        assert awards["MOMENT_COMPLETED_evt1"].awarded is True
        assert db.get(stats_path("u1"))["allTimeXP"] == 10

    def test_depth_bonus(self, db):
        awards = award_moment_xp(db, "u1", "evt1", depth_signals=2, now=NOW)
        assert awards["DEPTH_BONUS_evt1"].awarded is True
        assert db.get(stats_path("u1"))["allTimeXP"] == 15

    def test_one_signal_is_not_enough(self, db):
        awards = award_moment_xp(db, "u1", "evt1", depth_signals=1, now=NOW)
        assert "DEPTH_BONUS_evt1" not in awards

    def test_replayed_capture(self, db):
        award_moment_xp(db, "u1", "evt1", depth_signals=3, now=NOW)
        awards = award_moment_xp(db, "u1", "evt1", depth_signals=3, now=NOW)
        assert not any(award.awarded for award in awards.values())
        assert db.get(stats_path("u1"))["allTimeXP"] == 15
