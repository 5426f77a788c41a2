"""Daily quests: day-scoped conditions that grant XP through the ledger.

Quest grants use idempotency keys scoped to (action, date), so running the
quest check any number of times in a day awards each quest at most once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from journey_ledger.activity import load_moments
from journey_ledger.clock import parse_timestamp
from journey_ledger.db import Database
from journey_ledger.ledger import (
    XP_DAILY_REFLECTIONS_COMPLETED,
    XP_DEPTH_BONUS,
    XP_MOMENT_COMPLETED,
    AwardResult,
    award_xp_once,
)
from journey_ledger.reflections import daily_reflection_key, get_reflection

logger = logging.getLogger(__name__)

MIN_DEPTH_SIGNALS = 2


@dataclass
class QuestResult:
    date_key: str
    moment_logged: bool
    reflections_completed: bool
    awards: dict[str, AwardResult] = field(default_factory=dict)


def moment_quest_key(date_key: str) -> str:
    return f"MOMENT_COMPLETED_{date_key}"


def has_moment_on(db: Database, uid: str, date_key: str) -> bool:
    """True if any moment was created on the given UTC date."""
    for _, data in load_moments(db, uid):
        created_at = parse_timestamp(data.get("createdAt"))
        if created_at is not None and created_at.date().isoformat() == date_key:
            return True
    return False


def reconcile_daily_quests(
    db: Database, uid: str, date_key: str, *, now: datetime | None = None
) -> QuestResult:
    """Grant the daily reflection and daily moment quests for ``date_key``."""
    reflection = get_reflection(db, uid, date_key)
    result = QuestResult(
        date_key=date_key,
        moment_logged=has_moment_on(db, uid, date_key),
        reflections_completed=bool(reflection and reflection.get("completed")),
    )

    if result.reflections_completed:
        key = daily_reflection_key(date_key)
        result.awards[key] = award_xp_once(
            db, uid, key, XP_DAILY_REFLECTIONS_COMPLETED, {"dateKey": date_key}, now=now
        )

    if result.moment_logged:
        key = moment_quest_key(date_key)
        result.awards[key] = award_xp_once(
            db, uid, key, XP_MOMENT_COMPLETED, {"dateKey": date_key}, now=now
        )

    logger.debug("Daily quests for %s on %s: %s", uid, date_key, result)
    return result


def award_moment_xp(
    db: Database,
    uid: str,
    event_id: str,
    *,
    depth_signals: int = 0,
    now: datetime | None = None,
) -> dict[str, AwardResult]:
    """Grants for one captured moment: the base grant plus a depth bonus.

    ``depth_signals`` counts tags, a note, an intensity and attachments; two or
    more earn the bonus.
    """
    awards = {
        f"MOMENT_COMPLETED_{event_id}": award_xp_once(
            db, uid, f"MOMENT_COMPLETED_{event_id}", XP_MOMENT_COMPLETED, {"eventId": event_id}, now=now
        )
    }
    if depth_signals >= MIN_DEPTH_SIGNALS:
        awards[f"DEPTH_BONUS_{event_id}"] = award_xp_once(
            db, uid, f"DEPTH_BONUS_{event_id}", XP_DEPTH_BONUS, {"eventId": event_id}, now=now
        )
    return awards
