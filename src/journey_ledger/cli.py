"""CLI commands for journey-ledger."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from rich.logging import RichHandler

from journey_ledger.badges import (
    BADGE_DEFINITIONS,
    category_name,
    get_active_badge,
    get_badge_records,
    get_newly_earned,
    set_active_badge,
)
from journey_ledger.config import get_db_path, get_max_attempts, get_user_id
from journey_ledger.db import Database
from journey_ledger.display import (
    console,
    print_award_result,
    print_badges,
    print_error,
    print_no_data_message,
    print_reflection_result,
    print_status,
    print_sync_report,
)
from journey_ledger.exceptions import InvalidInput, LedgerError
from journey_ledger.ledger import award_xp_once
from journey_ledger.levels import level_progress
from journey_ledger.reflections import REFLECTION_SLOTS, answered_count, save_reflection_answer
from journey_ledger.stats import StatsRepository, record_patterns_viewed
from journey_ledger.sync import reconcile_all

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    parser = argparse.ArgumentParser(
        prog="journey-ledger",
        description="XP, levels, streaks and badges for your reflection journal",
    )
    parser.add_argument("--user", "-u", default=None, help="User id (defaults to config user_id)")
    parser.add_argument("--db", default=None, help="Path to the SQLite database")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("status", help="Show level, XP and streaks")
    subparsers.add_parser("sync", help="Reconcile stats, badges and daily quests")
    subparsers.add_parser("badges", help="List all badges with progress")
    subparsers.add_parser("patterns-viewed", help="Record a visit to the patterns page")
    award_parser = subparsers.add_parser("award", help="Grant XP once for an idempotency key")
    award_parser.add_argument("key", help="Idempotency key, e.g. MOMENT_COMPLETED_2024-01-08")
    award_parser.add_argument("amount", type=int, help="XP amount (> 0)")
    reflect_parser = subparsers.add_parser("reflect", help="Answer a daily reflection question")
    reflect_parser.add_argument("slot", choices=[s.replace("_answer", "") for s in REFLECTION_SLOTS])
    reflect_parser.add_argument("value", help="Your answer")
    reflect_parser.add_argument("--date", default=None, help="Date key (YYYY-MM-DD), defaults to today")
    active_parser = subparsers.add_parser("active-badge", help="Show or choose the active badge")
    active_parser.add_argument("badge_id", nargs="?", default=None)
    active_parser.add_argument("--clear", action="store_true", help="Remove the active badge")
    return parser


def configure_logging(verbose: bool = False) -> None:
    """Route library logging through Rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def main(argv: list[str] | None = None) -> int:
    """Entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)
    command = args.command or "status"

    uid = args.user or get_user_id()
    if not uid:
        print_error("No user set. Pass --user or add user_id to ~/.journey-ledger/config.json")
        return 2

    db_path = Path(args.db).expanduser() if args.db else get_db_path()
    db = Database(db_path=db_path, max_attempts=get_max_attempts())

    try:
        if command == "status":
            do_status(db, uid)
        elif command == "sync":
            do_sync(db, uid)
        elif command == "badges":
            do_badges(db, uid)
        elif command == "award":
            do_award(db, uid, args.key, args.amount)
        elif command == "reflect":
            do_reflect(db, uid, args.slot, args.value, date_key=args.date)
        elif command == "active-badge":
            do_active_badge(db, uid, args.badge_id, clear=args.clear)
        elif command == "patterns-viewed":
            count = record_patterns_viewed(db, uid)
            console.print(f"Patterns viewed {count} times")
    except LedgerError as exc:
        logger.debug("Command %s failed: %s", command, exc.to_dict())
        hint = " (temporary, try again)" if exc.is_retryable else ""
        print_error(f"{exc.message}{hint}")
        return 1
    finally:
        db.close()
    return 0


def do_status(db: Database, uid: str) -> dict:
    """Show the progress panel. Returns the rendered data (empty if no stats)."""
    stats = StatsRepository(db, uid).get()
    if stats is None:
        print_no_data_message()
        return {}

    total_xp = int(stats.get("allTimeXP") or 0)
    progress = level_progress(total_xp)
    active = get_active_badge(db, uid)
    data = {
        "level": progress.level,
        "level_name": progress.level_name,
        "total_xp": total_xp,
        "weekly_xp": int(stats.get("weeklyXP") or 0),
        "current_level_min_xp": progress.current_level_min_xp,
        "next_level_xp": progress.next_level_xp,
        "xp_remaining": progress.xp_remaining,
        "streak_days": int(stats.get("streakDays") or 0),
        "best_streak_days": int(stats.get("bestStreakDays") or 0),
        "moments_count": int(stats.get("momentsCount") or 0),
        "reflections_count": int(stats.get("reflectionsCount") or 0),
        "journey_day": int(stats.get("journeyDay") or 0),
        "active_badge": {"id": active.id, "name": active.name, "icon": active.icon} if active else None,
    }
    print_status(data)
    return data


def do_sync(db: Database, uid: str) -> dict:
    """Run every reconciliation pass and print the report."""
    report = reconcile_all(db, uid)
    awarded = [key for key, res in report.quests.awards.items() if res.awarded] if report.quests else []
    result = {
        "date_key": report.date_key,
        "weekly_reset": report.weekly_reset,
        "moments_count": report.stats.get("momentsCount", 0),
        "reflections_count": report.stats.get("reflectionsCount", 0),
        "streak_days": report.stats.get("streakDays", 0),
        "badges_earned": sum(1 for s in report.badges if s.earned),
        "badges_total": len(BADGE_DEFINITIONS),
        "new_badges": [d.name for d in get_newly_earned(report.badges)],
        "quest_awards": awarded,
        "errors": report.errors,
        "ok": report.ok,
    }
    print_sync_report(result)
    return result


def do_badges(db: Database, uid: str) -> list[dict]:
    """Show every badge with its stored progress."""
    records = get_badge_records(db, uid)
    badges: list[dict] = []
    for definition in BADGE_DEFINITIONS:
        record = records.get(definition.id, {})
        badges.append({
            "id": definition.id,
            "icon": definition.icon,
            "name": definition.name,
            "description": definition.description,
            "category": category_name(definition.category),
            "earned": bool(record.get("earned")),
            "earned_at": record.get("earnedAt"),
            "current": int(record.get("progressCurrent") or 0),
            "target": definition.threshold,
        })
    print_badges(badges)
    return badges


def do_award(db: Database, uid: str, key: str, amount: int) -> dict:
    """Grant XP once for ``key``."""
    result = award_xp_once(db, uid, key, amount, {"source": "cli"})
    data = {"key": key, "amount": amount, "awarded": result.awarded, "level": result.level}
    print_award_result(data)
    return data


def do_reflect(db: Database, uid: str, slot: str, value: str, date_key: str | None = None) -> dict:
    """Save one reflection answer. ``slot`` may omit the ``_answer`` suffix."""
    field = slot if slot.endswith("_answer") else f"{slot}_answer"
    try:
        record = save_reflection_answer(db, uid, field, value, date_key=date_key)
    except InvalidInput as exc:
        print_error(exc.message)
        return {"ok": False, "reason": exc.message}
    data = {**record, "answered": answered_count(record)}
    print_reflection_result(data)
    return {"ok": True, **data}


def do_active_badge(db: Database, uid: str, badge_id: str | None, clear: bool = False) -> dict:
    """Show the active badge, or change it."""
    if clear:
        set_active_badge(db, uid, None)
        console.print("Active badge cleared")
        return {"ok": True, "active_badge": None}
    if badge_id:
        if not set_active_badge(db, uid, badge_id):
            print_error(f"Unknown badge: {badge_id}")
            return {"ok": False, "reason": "unknown_badge"}
    active = get_active_badge(db, uid)
    if active:
        console.print(f"Active badge: {active.icon} {active.name}")
    else:
        console.print("No active badge")
    return {"ok": True, "active_badge": active.id if active else None}
