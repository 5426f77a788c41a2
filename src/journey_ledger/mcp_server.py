"""MCP server for journey-ledger.

Exposes a user's progress as MCP tools so an assistant can query it
mid-conversation.
Run via: python3 -m journey_ledger.mcp_server
"""
from __future__ import annotations

from typing import Any

from mcp.server.fastmcp import FastMCP

mcp = FastMCP(name="journey-ledger")


def _get_db():
    from journey_ledger.config import get_db_path, get_max_attempts
    from journey_ledger.db import Database
    return Database(db_path=get_db_path(), max_attempts=get_max_attempts())


def _resolve_user(user_id: str) -> str | None:
    from journey_ledger.config import get_user_id
    return user_id or get_user_id()


@mcp.tool()
def get_progress(user_id: str = "") -> dict[str, Any]:
    """Get level, XP, weekly XP, streaks and the active badge.

    user_id: defaults to the configured user.
    """
    uid = _resolve_user(user_id)
    if not uid:
        return {"error": "No user configured. Set user_id in ~/.journey-ledger/config.json."}
    db = _get_db()
    try:
        from journey_ledger.badges import get_active_badge
        from journey_ledger.levels import level_progress
        from journey_ledger.stats import StatsRepository
        stats = StatsRepository(db, uid).get()
        if stats is None:
            return {"error": "No progress yet. Run journey-ledger sync first."}
        total_xp = int(stats.get("allTimeXP") or 0)
        progress = level_progress(total_xp)
        active = get_active_badge(db, uid)
        return {
            "level": progress.level, "level_name": progress.level_name,
            "total_xp": total_xp, "weekly_xp": int(stats.get("weeklyXP") or 0),
            "weekly_key": stats.get("weeklyKey"),
            "next_level_xp": progress.next_level_xp, "xp_remaining": progress.xp_remaining,
            "progress_to_next": round(progress.progress_to_next, 3),
            "is_max_level": progress.is_max_level,
            "streak_days": int(stats.get("streakDays") or 0),
            "best_streak_days": int(stats.get("bestStreakDays") or 0),
            "moments_count": int(stats.get("momentsCount") or 0),
            "reflections_count": int(stats.get("reflectionsCount") or 0),
            "journey_day": int(stats.get("journeyDay") or 0),
            "active_badge": active.id if active else None,
        }
    finally:
        db.close()


@mcp.tool()
def get_badges(user_id: str = "") -> dict[str, Any]:
    """Get every badge with earned status and progress."""
    uid = _resolve_user(user_id)
    if not uid:
        return {"error": "No user configured."}
    db = _get_db()
    try:
        from journey_ledger.badges import BADGE_DEFINITIONS, category_name, get_badge_records
        records = get_badge_records(db, uid)
        result = []
        for definition in BADGE_DEFINITIONS:
            record = records.get(definition.id, {})
            result.append({
                "id": definition.id, "name": definition.name,
                "description": definition.description,
                "category": category_name(definition.category),
                "earned": bool(record.get("earned")), "earned_at": record.get("earnedAt"),
                "progress_current": int(record.get("progressCurrent") or 0),
                "progress_target": definition.threshold,
            })
        return {"badges": result, "earned_count": sum(1 for b in result if b["earned"]),
                "total_count": len(result)}
    finally:
        db.close()


@mcp.tool()
def sync_progress(user_id: str = "") -> dict[str, Any]:
    """Reconcile stats, badges and daily quests, then report what changed."""
    uid = _resolve_user(user_id)
    if not uid:
        return {"error": "No user configured."}
    db = _get_db()
    try:
        from journey_ledger.badges import get_newly_earned
        from journey_ledger.sync import reconcile_all
        report = reconcile_all(db, uid)
        quest_awards = (
            [key for key, res in report.quests.awards.items() if res.awarded] if report.quests else []
        )
        return {
            "ok": report.ok, "date_key": report.date_key,
            "weekly_reset": report.weekly_reset, "stats": report.stats,
            "new_badges": [d.id for d in get_newly_earned(report.badges)],
            "quest_awards": quest_awards, "errors": report.errors,
        }
    finally:
        db.close()


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
