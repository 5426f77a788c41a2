"""XP ledger for journey-ledger.

Every grant is identified by an idempotency key unique per (user, action).
The XP event document written under that key is the durable marker that the
grant was applied: a second call with the same key is a no-op.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from journey_ledger.clock import current_week_key, to_iso, utc_now
from journey_ledger.db import Database, Transaction
from journey_ledger.levels import compute_level, compute_level_name
from journey_ledger.stats import LEDGER_FIELDS, StatsRepository, default_stats

logger = logging.getLogger(__name__)

# Grant amounts
XP_MOMENT_COMPLETED = 10
XP_DAILY_REFLECTIONS_COMPLETED = 15
XP_DEPTH_BONUS = 5


@dataclass
class AwardResult:
    awarded: bool
    level: int | None = None


def xp_events_collection(uid: str) -> str:
    return f"users/{uid}/xp_events"


def xp_event_path(uid: str, key: str) -> str:
    return f"{xp_events_collection(uid)}/{key}"


def award_xp_once(
    db: Database,
    uid: str,
    key: str,
    amount: int,
    metadata: dict[str, Any] | None = None,
    *,
    now: datetime | None = None,
    max_attempts: int | None = None,
) -> AwardResult:
    """Apply an XP grant exactly once per ``key``.

    1. If the XP event at ``key`` exists, the grant was already applied.
    2. Read the aggregate (a missing one counts as zeroed).
    3. Weekly XP restarts at 0 if the stored week key is not the current week.
    4. Write the XP event and merge the ledger-owned aggregate fields.

    All of it runs in one optimistic transaction and is retried from step 1 on
    conflict, up to ``max_attempts`` times (the database default if None).
    Missing user, empty key or non-positive amount is not an error:
    the result is simply ``awarded=False``.
    """
    if (
        not uid
        or "/" in uid
        or not key
        or "/" in key
        or isinstance(amount, bool)
        or not isinstance(amount, (int, float))
        or amount <= 0
    ):
        logger.debug("Ignoring XP grant uid=%r key=%r amount=%r", uid, key, amount)
        return AwardResult(awarded=False)

    now = now or utc_now()
    week_key = current_week_key(now)
    event_path = xp_event_path(uid, key)
    repo = StatsRepository(db, uid)

    def apply(tx: Transaction) -> AwardResult:
        if tx.get(event_path) is not None:
            return AwardResult(awarded=False)

        stats = tx.get(repo.path)
        current = stats or {}
        weekly_xp = (current.get("weeklyXP") or 0) if current.get("weeklyKey") == week_key else 0
        all_time_xp = current.get("allTimeXP") or 0

        new_all_time = all_time_xp + amount
        level = compute_level(new_all_time)

        tx.set(event_path, {
            "amount": amount,
            "createdAt": to_iso(now),
            "weekKey": week_key,
            "metadata": metadata or {},
        })

        updates = {
            "allTimeXP": new_all_time,
            "weeklyXP": weekly_xp + amount,
            "weeklyKey": week_key,
            "level": level,
            "levelName": compute_level_name(level),
        }
        if stats is None:
            tx.set(repo.path, {**default_stats(week_key), **updates})
        else:
            repo.merge_in(tx, updates, LEDGER_FIELDS)
        return AwardResult(awarded=True, level=level)

    result = db.run_transaction(apply, max_attempts)
    if result.awarded:
        logger.info("Awarded %d XP to %s for %s (level %d)", amount, uid, key, result.level)
    else:
        logger.debug("XP grant %s already applied for %s", key, uid)
    return result


def get_xp_event(db: Database, uid: str, key: str) -> dict[str, Any] | None:
    """Return the XP event recorded under ``key``, if any."""
    if not uid or not key or "/" in key:
        return None
    return db.get(xp_event_path(uid, key))


def list_xp_events(db: Database, uid: str) -> list[dict[str, Any]]:
    """Return all XP events of a user, ordered by key, with the key included."""
    return [{"key": key, **event} for key, event in db.list_collection(xp_events_collection(uid))]
