"""Tests for CLI commands and display helpers."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from journey_ledger.cli import (
    build_parser,
    do_active_badge,
    do_award,
    do_badges,
    do_reflect,
    do_status,
    do_sync,
    main,
)
from journey_ledger.db import Database
from journey_ledger.display import _xp_bar, format_number, level_color
from journey_ledger.exceptions import TransactionRetriesExhausted
from journey_ledger.stats import stats_path


@pytest.fixture
def db(tmp_path):
    """Create a temporary database for testing."""
    db_path = tmp_path / "test.db"
    database = Database(db_path=db_path)
    yield database
    database.close()


# ── Argument Parsing ──────────────────────────────────────────────────────────


class TestArgumentParsing:
    def test_no_args_defaults_to_none_command(self):
        parser = build_parser()
        args = parser.parse_args([])
        assert args.command is None

    def test_sync_command(self):
        args = build_parser().parse_args(["sync"])
        assert args.command == "sync"

    def test_global_flags(self):
        args = build_parser().parse_args(["--user", "u1", "--db", "/tmp/x.db", "-v", "status"])
        assert args.user == "u1"
        assert args.db == "/tmp/x.db"
        assert args.verbose is True

    def test_award_amount_is_int(self):
        args = build_parser().parse_args(["award", "K", "10"])
        assert args.key == "K"
        assert args.amount == 10

    def test_reflect_slot_choices(self):
        args = build_parser().parse_args(["reflect", "support", "a friend", "--date", "2024-01-03"])
        assert args.slot == "support"
        assert args.date == "2024-01-03"

    def test_reflect_rejects_unknown_slot(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["reflect", "mood", "x"])

    def test_active_badge_optional_id(self):
        args = build_parser().parse_args(["active-badge"])
        assert args.badge_id is None
        assert args.clear is False


# ── Display helpers ───────────────────────────────────────────────────────────


class TestDisplayHelpers:
    def test_format_number(self):
        assert format_number(1200) == "1,200"
        assert format_number(421543) == "421.5K"
        assert format_number(1234567) == "1.2M"

    def test_xp_bar(self):
        assert _xp_bar(5, 10, width=4) == "[██░░]"
        assert _xp_bar(0, 0, width=3) == "[███]"

    def test_level_color_clamps(self):
        assert level_color(0) == level_color(1)
        assert level_color(99) == level_color(7)


# ── Commands ──────────────────────────────────────────────────────────────────


class TestDoStatus:
    def test_no_stats(self, db):
        assert do_status(db, "u1") == {}

    def test_populated(self, db):
        db.set(stats_path("u1"), {
            "allTimeXP": 60, "weeklyXP": 20, "weeklyKey": "2024-W01",
            "streakDays": 2, "bestStreakDays": 4, "activeBadgeId": "first_steps",
        })
        data = do_status(db, "u1")
        assert data["level"] == 2
        assert data["level_name"] == "levels.explorer"
        assert data["next_level_xp"] == 200
        assert data["xp_remaining"] == 140
        assert data["weekly_xp"] == 20
        assert data["best_streak_days"] == 4
        assert data["active_badge"]["id"] == "first_steps"


class TestDoSync:
    def test_new_user(self, db):
        result = do_sync(db, "u1")
        assert result["ok"] is True
        assert result["badges_total"] == 12
        assert result["errors"] == {}

    def test_reports_new_badges(self, db):
        db.set("users/u1/moments/m1", {"emotion": "calm"})
        result = do_sync(db, "u1")
        assert "First Steps" in result["new_badges"]
        assert result["moments_count"] == 1


class TestDoBadges:
    def test_lists_all(self, db):
        badges = do_badges(db, "u1")
        assert len(badges) == 12
        assert not any(b["earned"] for b in badges)

    def test_reflects_records(self, db):
        db.set("users/u1/badges/first_steps", {"earned": True, "earnedAt": "2024-01-03T12:00:00+00:00",
                                              "progressCurrent": 1})
        badges = {b["id"]: b for b in do_badges(db, "u1")}
        assert badges["first_steps"]["earned"] is True
        assert badges["first_steps"]["category"] == "Getting Started"


class TestDoAward:
    def test_award_then_duplicate(self, db):
        first = do_award(db, "u1", "K", 60)
        second = do_award(db, "u1", "K", 60)
        assert first == {"key": "K", "amount": 60, "awarded": True, "level": 2}
        assert second["awarded"] is False
        assert db.get("users/u1/xp_events/K")["metadata"] == {"source": "cli"}


class TestDoReflect:
    def test_short_slot_name(self, db):
        result = do_reflect(db, "u1", "support", "a friend", date_key="2024-01-03")
        assert result["ok"] is True
        assert result["support_answer"] == "a friend"
        assert result["answered"] == 1

    def test_completing_grants_xp(self, db):
        for slot in ("support", "reframe", "boundary"):
            result = do_reflect(db, "u1", slot, "yes", date_key="2024-01-03")
        assert result["completed"] is True
        assert db.get(stats_path("u1"))["allTimeXP"] == 15

    def test_bad_date(self, db):
        result = do_reflect(db, "u1", "support", "x", date_key="yesterday")
        assert result["ok"] is False


class TestDoActiveBadge:
    def test_set_and_clear(self, db):
        assert do_active_badge(db, "u1", "committed")["active_badge"] == "committed"
        assert do_active_badge(db, "u1", None)["active_badge"] == "committed"
        assert do_active_badge(db, "u1", None, clear=True)["active_badge"] is None

    def test_unknown(self, db):
        assert do_active_badge(db, "u1", "nope") == {"ok": False, "reason": "unknown_badge"}


# ── main ──────────────────────────────────────────────────────────────────────


class TestMain:
    @patch("journey_ledger.cli.get_user_id", return_value=None)
    def test_no_user(self, mock_user, tmp_path):
        assert main(["--db", str(tmp_path / "x.db"), "status"]) == 2

    @patch("journey_ledger.cli.get_user_id", return_value="u1")
    def test_configured_user(self, mock_user, tmp_path):
        db_path = tmp_path / "x.db"
        assert main(["--db", str(db_path), "award", "K", "10"]) == 0
        database = Database(db_path=db_path)
        try:
            assert database.get(stats_path("u1"))["allTimeXP"] == 10
        finally:
            database.close()

    def test_user_flag(self, tmp_path):
        assert main(["--user", "u2", "--db", str(tmp_path / "x.db"), "sync"]) == 0

    def test_ledger_error_exit_code(self, tmp_path):
        error = TransactionRetriesExhausted(5)
        with patch("journey_ledger.cli.reconcile_all", side_effect=error):
            assert main(["--user", "u1", "--db", str(tmp_path / "x.db"), "sync"]) == 1
