"""Daily reflection records: three answer slots per day.

A record is ``completed`` exactly when all three slots hold a non-empty
answer. Completing it grants the daily reflection XP through the ledger.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from journey_ledger.activity import reflections_collection
from journey_ledger.clock import as_utc, current_date_key, parse_date_key, to_iso
from journey_ledger.db import Database, Transaction
from journey_ledger.exceptions import InvalidInput
from journey_ledger.ledger import XP_DAILY_REFLECTIONS_COMPLETED, award_xp_once

logger = logging.getLogger(__name__)

REFLECTION_SLOTS: tuple[str, ...] = ("support_answer", "reframe_answer", "boundary_answer")


def reflection_path(uid: str, date_key: str) -> str:
    return f"{reflections_collection(uid)}/{date_key}"


def daily_reflection_key(date_key: str) -> str:
    """Idempotency key of the daily reflection grant."""
    return f"DAILY_REFLECTIONS_COMPLETED_{date_key}"


def answered_count(record: dict[str, Any] | None) -> int:
    if not record:
        return 0
    return sum(1 for slot in REFLECTION_SLOTS if record.get(slot))


def is_complete(record: dict[str, Any] | None) -> bool:
    return answered_count(record) == len(REFLECTION_SLOTS)


def get_reflection(db: Database, uid: str, date_key: str) -> dict[str, Any] | None:
    return db.get(reflection_path(uid, date_key))


def save_reflection_answer(
    db: Database,
    uid: str,
    slot: str,
    value: str,
    *,
    date_key: str | None = None,
    moment_id: str | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Store one answer and return the updated record.

    Raises InvalidInput for an unknown slot, an empty answer or a bad date key.
    """
    if not uid:
        raise InvalidInput("A user id is required")
    if slot not in REFLECTION_SLOTS:
        raise InvalidInput(f"Unknown reflection slot {slot!r}", {"slot": slot})
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput("Reflection answers must be non-empty", {"slot": slot})

    now = as_utc(now)
    date_key = date_key or current_date_key(now)
    if parse_date_key(date_key) is None:
        raise InvalidInput(f"Bad date key {date_key!r}", {"date_key": date_key})
    path = reflection_path(uid, date_key)

    def write(tx: Transaction) -> dict[str, Any]:
        record = {**(tx.get(path) or {}), slot: value, "dateKey": date_key}
        if moment_id is not None:
            record["momentId"] = moment_id
        complete = is_complete(record)
        updates: dict[str, Any] = {slot: value, "dateKey": date_key, "completed": complete}
        if moment_id is not None:
            updates["momentId"] = moment_id
        if complete and not record.get("completedAt"):
            updates["completedAt"] = to_iso(now)
        tx.set(path, updates, merge=True)
        return {**record, **updates}

    saved = db.run_transaction(write)
    if saved["completed"]:
        award_xp_once(
            db, uid, daily_reflection_key(date_key), XP_DAILY_REFLECTIONS_COMPLETED,
            {"dateKey": date_key}, now=now,
        )
    logger.debug("Saved %s for %s on %s (%d/3)", slot, uid, date_key, answered_count(saved))
    return saved
