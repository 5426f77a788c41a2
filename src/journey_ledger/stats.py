"""The per-user stats aggregate and who may write which of its fields.

One document per user (``users/{uid}/stats/main``). The XP ledger increments
its fields inside transactions, reconciliation replaces its fields wholesale,
and the client sets the user-owned ones. Each writer merges only the fields it
owns, never the whole document, so the writers cannot clobber each other.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from journey_ledger.clock import current_week_key
from journey_ledger.db import Database, Transaction
from journey_ledger.exceptions import FieldOwnershipError
from journey_ledger.levels import compute_level_name

logger = logging.getLogger(__name__)

LEDGER_FIELDS: frozenset[str] = frozenset({
    "allTimeXP",
    "weeklyXP",
    "weeklyKey",
    "level",
    "levelName",
})

RECONCILE_FIELDS: frozenset[str] = frozenset({
    "momentsCount",
    "reflectionsCount",
    "streakDays",
    "bestStreakDays",
    "journeyDay",
    "lastMomentAt",
    "lastReflectionAt",
    "depthMoments",
    "emotionCounts",
})

USER_FIELDS: frozenset[str] = frozenset({
    "activeBadgeId",
    "patternsViewed",
})

_OWNER_NAMES: dict[frozenset[str], str] = {
    LEDGER_FIELDS: "ledger",
    RECONCILE_FIELDS: "reconciliation",
    USER_FIELDS: "user",
}


def stats_path(uid: str) -> str:
    return f"users/{uid}/stats/main"


def default_stats(week_key: str) -> dict[str, Any]:
    """A zeroed aggregate for a user seen for the first time."""
    return {
        "allTimeXP": 0,
        "weeklyXP": 0,
        "weeklyKey": week_key,
        "level": 1,
        "levelName": compute_level_name(1),
        "activeBadgeId": None,
        "momentsCount": 0,
        "reflectionsCount": 0,
        "streakDays": 0,
        "bestStreakDays": 0,
        "journeyDay": 0,
        "journeyWeekKey": week_key,
        "lastMomentAt": None,
        "lastReflectionAt": None,
        "depthMoments": 0,
        "emotionCounts": {},
        "patternsViewed": 0,
    }


def check_ownership(fields: dict[str, Any], owned: frozenset[str]) -> None:
    """Raise FieldOwnershipError if ``fields`` has keys outside ``owned``."""
    foreign = set(fields) - owned
    if foreign:
        raise FieldOwnershipError(foreign, _OWNER_NAMES.get(owned, "writer"))


class StatsRepository:
    """Field-partitioned access to one user's stats aggregate."""

    def __init__(self, db: Database, uid: str) -> None:
        self.db = db
        self.uid = uid
        self.path = stats_path(uid)

    def get(self) -> dict[str, Any] | None:
        return self.db.get(self.path)

    def ensure(self, now: datetime | None = None) -> dict[str, Any]:
        """Return the aggregate, creating a zeroed one if it does not exist."""
        existing = self.get()
        if existing is not None:
            return existing

        def create(tx: Transaction) -> dict[str, Any]:
            current = tx.get(self.path)
            if current is not None:
                return current
            fresh = default_stats(current_week_key(now))
            tx.set(self.path, fresh)
            return fresh

        created = self.db.run_transaction(create)
        logger.debug("Stats aggregate ready for %s", self.uid)
        return created

    def merge(self, fields: dict[str, Any], owned: frozenset[str]) -> None:
        """Merge-write ``fields``, which must all belong to ``owned``."""
        check_ownership(fields, owned)
        self.db.merge(self.path, fields)

    def merge_in(self, tx: Transaction, fields: dict[str, Any], owned: frozenset[str]) -> None:
        """Transactional variant of ``merge``."""
        check_ownership(fields, owned)
        tx.set(self.path, fields, merge=True)


def ensure_stats_doc(db: Database, uid: str, *, now: datetime | None = None) -> dict[str, Any]:
    """Create the user's stats aggregate if it is missing and return it."""
    return StatsRepository(db, uid).ensure(now)


def record_patterns_viewed(db: Database, uid: str, *, now: datetime | None = None) -> int:
    """Increment the patterns-page view counter. Returns the new count."""
    repo = StatsRepository(db, uid)
    repo.ensure(now)

    def bump(tx: Transaction) -> int:
        current = tx.get(repo.path) or {}
        count = int(current.get("patternsViewed") or 0) + 1
        repo.merge_in(tx, {"patternsViewed": count}, USER_FIELDS)
        return count

    return db.run_transaction(bump)
