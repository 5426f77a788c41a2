"""Recompute derived stats from the raw activity collections.

Reconciliation is a pure function of the moments and reflection records at
call time, so it is safe to run repeatedly or concurrently with itself (the
last writer wins with the same values). It only writes the fields it owns and
never touches the XP fields the ledger maintains.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any

from journey_ledger.activity import (
    load_moments,
    load_reflections,
    summarize_moments,
    summarize_reflections,
)
from journey_ledger.clock import as_utc, current_week_key, to_iso
from journey_ledger.db import Database, Transaction
from journey_ledger.stats import LEDGER_FIELDS, RECONCILE_FIELDS, StatsRepository
from journey_ledger.streaks import calculate_reflection_streak

logger = logging.getLogger(__name__)

JOURNEY_WINDOW_DAYS = 7


def count_journey_days(moment_days: set[str], today: date) -> int:
    """Distinct days with a moment in the trailing window ending today, capped at 7."""
    window_start = today - timedelta(days=JOURNEY_WINDOW_DAYS - 1)
    in_window = {
        day for day in moment_days
        if window_start.isoformat() <= day <= today.isoformat()
    }
    return min(JOURNEY_WINDOW_DAYS, len(in_window))


def reconcile_stats_from_data(db: Database, uid: str, *, now: datetime | None = None) -> dict[str, Any]:
    """Recompute counts, streaks and histograms and merge them into the aggregate.

    Returns the dict of fields written.
    """
    now = as_utc(now)
    today = now.date()
    repo = StatsRepository(db, uid)
    repo.ensure(now)

    moments = summarize_moments(load_moments(db, uid))
    reflections = summarize_reflections(load_reflections(db, uid))
    streak = calculate_reflection_streak(reflections.completed_dates, today.isoformat())

    updates: dict[str, Any] = {
        "momentsCount": moments.count,
        "reflectionsCount": len(reflections.completed_dates),
        "streakDays": streak.current_streak,
        "bestStreakDays": streak.best_streak,
        "journeyDay": count_journey_days(moments.days, today),
        "lastMomentAt": to_iso(moments.last_moment_at) if moments.last_moment_at else None,
        "lastReflectionAt": to_iso(reflections.last_reflection_at) if reflections.last_reflection_at else None,
        "depthMoments": moments.depth_moments,
        "emotionCounts": moments.emotion_counts,
    }
    repo.merge(updates, RECONCILE_FIELDS)

    if moments.skipped or reflections.skipped:
        logger.warning(
            "Reconciled %s with %d malformed moments and %d malformed reflections skipped",
            uid, moments.skipped, reflections.skipped,
        )
    else:
        logger.debug("Reconciled stats for %s: %s", uid, updates)
    return updates


def reconcile_weekly_reset(db: Database, uid: str, *, now: datetime | None = None) -> bool:
    """Zero weekly XP if the stored week key is stale. Returns True if reset.

    Does nothing when the aggregate does not exist yet.
    """
    week_key = current_week_key(now)
    repo = StatsRepository(db, uid)

    def reset(tx: Transaction) -> bool:
        stats = tx.get(repo.path)
        if stats is None or stats.get("weeklyKey") == week_key:
            return False
        repo.merge_in(tx, {"weeklyKey": week_key, "weeklyXP": 0}, LEDGER_FIELDS)
        return True

    was_reset = db.run_transaction(reset)
    if was_reset:
        logger.info("Weekly XP reset for %s (%s)", uid, week_key)
    return was_reset
