"""Read-side summaries of the raw activity collections.

Moments and daily reflection records are written by the capture screens; the
engine only reads them. A malformed record is logged and left out of the
derived numbers instead of failing the whole pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from journey_ledger.clock import parse_date_key, parse_timestamp
from journey_ledger.db import Database

logger = logging.getLogger(__name__)


@dataclass
class MomentSummary:
    count: int = 0
    depth_moments: int = 0  # moments with at least one tag or a note
    emotion_counts: dict[str, int] = field(default_factory=dict)
    last_moment_at: datetime | None = None
    days: set[str] = field(default_factory=set)  # UTC date keys with a moment
    skipped: int = 0


@dataclass
class ReflectionSummary:
    completed_dates: set[str] = field(default_factory=set)
    last_reflection_at: datetime | None = None
    skipped: int = 0


def moments_collection(uid: str) -> str:
    return f"users/{uid}/moments"


def reflections_collection(uid: str) -> str:
    return f"users/{uid}/daily_reflections"


def load_moments(db: Database, uid: str) -> list[tuple[str, dict[str, Any]]]:
    return db.list_collection(moments_collection(uid))


def load_reflections(db: Database, uid: str) -> list[tuple[str, dict[str, Any]]]:
    return db.list_collection(reflections_collection(uid))


def moment_emotion(data: dict[str, Any]) -> str | None:
    emotion = data.get("emotion") or data.get("primaryEmotion")
    return emotion if isinstance(emotion, str) and emotion else None


def is_depth_moment(data: dict[str, Any]) -> bool:
    """True if the moment carries at least one tag or a non-empty note."""
    tags = data.get("tags") or []
    if not isinstance(tags, (list, tuple)):
        raise TypeError(f"tags must be a list, got {type(tags).__name__}")
    note = data.get("note") or data.get("description")
    return len(tags) > 0 or bool(note)


def summarize_moments(moments: list[tuple[str, dict[str, Any]]]) -> MomentSummary:
    """Count moments, depth moments, emotions and the days they fall on."""
    summary = MomentSummary(count=len(moments))
    for doc_id, data in moments:
        try:
            depth = is_depth_moment(data)
            emotion = moment_emotion(data)
            created_at = parse_timestamp(data.get("createdAt"))
        except (TypeError, ValueError, AttributeError) as exc:
            summary.skipped += 1
            logger.warning("Skipping malformed moment %s: %s", doc_id, exc)
            continue

        if depth:
            summary.depth_moments += 1
        if emotion:
            summary.emotion_counts[emotion] = summary.emotion_counts.get(emotion, 0) + 1
        if created_at is not None:
            summary.days.add(created_at.date().isoformat())
            if summary.last_moment_at is None or created_at > summary.last_moment_at:
                summary.last_moment_at = created_at
    return summary


def summarize_reflections(records: list[tuple[str, dict[str, Any]]]) -> ReflectionSummary:
    """Collect the distinct dates of completed reflection records."""
    summary = ReflectionSummary()
    for doc_id, data in records:
        if not data.get("completed"):
            continue
        date_key = data.get("dateKey") or doc_id
        if parse_date_key(date_key) is None:
            summary.skipped += 1
            logger.warning("Skipping reflection %s with bad date key %r", doc_id, date_key)
            continue
        summary.completed_dates.add(date_key)
        completed_at = parse_timestamp(data.get("completedAt"))
        if completed_at and (summary.last_reflection_at is None or completed_at > summary.last_reflection_at):
            summary.last_reflection_at = completed_at
    return summary
