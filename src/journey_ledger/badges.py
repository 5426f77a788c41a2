"""Badge definitions and the badge engine for journey-ledger."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from journey_ledger.activity import (
    load_moments,
    load_reflections,
    summarize_moments,
    summarize_reflections,
)
from journey_ledger.clock import to_iso, utc_now
from journey_ledger.db import Database, Transaction
from journey_ledger.stats import USER_FIELDS, StatsRepository

logger = logging.getLogger(__name__)


class BadgeCategory(str, Enum):
    GETTING_STARTED = "getting_started"
    CONSISTENCY = "consistency"
    DEPTH = "depth"
    EMOTION = "emotion"
    INSIGHT = "insight"


class CriteriaType(str, Enum):
    MOMENTS_LOGGED = "moments_logged"
    REFLECTIONS_COMPLETED = "reflections_completed"
    TAGS_ADDED = "tags_added"
    EMOTION_LOGGED = "emotion_logged"
    PATTERNS_VIEWED = "patterns_viewed"
    STREAK_DAYS = "streak_days"


@dataclass(frozen=True)
class BadgeDefinition:
    id: str
    name: str
    icon: str
    category: BadgeCategory
    description: str
    criteria_type: CriteriaType
    threshold: int
    xp_reward: int
    emotion_type: str | None = None


@dataclass
class Supplemental:
    """Counts recomputed from raw activity alongside the aggregate."""

    reflection_days: int = 0
    depth_moments: int = 0
    emotion_counts: dict[str, int] = field(default_factory=dict)


@dataclass
class BadgeStatus:
    definition: BadgeDefinition
    progress_current: int
    progress_target: int
    earned: bool
    earned_at: str | None
    newly_earned: bool = False


@dataclass
class BadgeAwardResult:
    success: bool
    already_earned: bool
    badge: BadgeDefinition | None = None


BADGE_DEFINITIONS: list[BadgeDefinition] = [
    BadgeDefinition(
        id="first_steps",
        name="First Steps",
        icon="\U0001f331",
        category=BadgeCategory.GETTING_STARTED,
        description="Logged your first moment",
        criteria_type=CriteriaType.MOMENTS_LOGGED,
        threshold=1,
        xp_reward=10,
    ),
    BadgeDefinition(
        id="reflection_starter",
        name="Reflection Starter",
        icon="\U0001f4ad",
        category=BadgeCategory.GETTING_STARTED,
        description="Completed your first daily reflection",
        criteria_type=CriteriaType.REFLECTIONS_COMPLETED,
        threshold=1,
        xp_reward=15,
    ),
    BadgeDefinition(
        id="three_in_a_row",
        name="Building Momentum",
        icon="\U0001f525",
        category=BadgeCategory.CONSISTENCY,
        description="Completed reflections on 3 different days",
        criteria_type=CriteriaType.REFLECTIONS_COMPLETED,
        threshold=3,
        xp_reward=25,
    ),
    BadgeDefinition(
        id="weekly_warrior",
        name="Weekly Warrior",
        icon="⚡",
        category=BadgeCategory.CONSISTENCY,
        description="Completed reflections on 7 different days",
        criteria_type=CriteriaType.REFLECTIONS_COMPLETED,
        threshold=7,
        xp_reward=50,
    ),
    BadgeDefinition(
        id="depth_builder",
        name="Depth Builder",
        icon="\U0001f4dd",
        category=BadgeCategory.DEPTH,
        description="Added tags or notes to 5 moments",
        criteria_type=CriteriaType.TAGS_ADDED,
        threshold=5,
        xp_reward=20,
    ),
    BadgeDefinition(
        id="detail_master",
        name="Detail Master",
        icon="\U0001f3af",
        category=BadgeCategory.DEPTH,
        description="Added tags or notes to 20 moments",
        criteria_type=CriteriaType.TAGS_ADDED,
        threshold=20,
        xp_reward=40,
    ),
    BadgeDefinition(
        id="calm_finder",
        name="Calm Finder",
        icon="\U0001f54a️",
        category=BadgeCategory.EMOTION,
        description='Logged "Calm" emotion 5 times',
        criteria_type=CriteriaType.EMOTION_LOGGED,
        threshold=5,
        xp_reward=20,
        emotion_type="Calm",
    ),
    BadgeDefinition(
        id="hard_truth",
        name="Raw Honesty",
        icon="\U0001f4a2",
        category=BadgeCategory.EMOTION,
        description="Logged difficult emotions (Hurt/Angry) 3 times",
        criteria_type=CriteriaType.EMOTION_LOGGED,
        threshold=3,
        xp_reward=30,
        emotion_type="Hurt",
    ),
    BadgeDefinition(
        id="joy_seeker",
        name="Joy Seeker",
        icon="✨",
        category=BadgeCategory.EMOTION,
        description='Logged "Happy" or "Excited" 10 times',
        criteria_type=CriteriaType.EMOTION_LOGGED,
        threshold=10,
        xp_reward=25,
        emotion_type="Happy",
    ),
    BadgeDefinition(
        id="pattern_hunter",
        name="Pattern Hunter",
        icon="\U0001f50d",
        category=BadgeCategory.INSIGHT,
        description="Viewed your patterns page 3 times",
        criteria_type=CriteriaType.PATTERNS_VIEWED,
        threshold=3,
        xp_reward=15,
    ),
    BadgeDefinition(
        id="streak_starter",
        name="Streak Starter",
        icon="\U0001f31f",
        category=BadgeCategory.CONSISTENCY,
        description="Maintained a 3-day streak",
        criteria_type=CriteriaType.STREAK_DAYS,
        threshold=3,
        xp_reward=30,
    ),
    BadgeDefinition(
        id="committed",
        name="Fully Committed",
        icon="\U0001f3c6",
        category=BadgeCategory.CONSISTENCY,
        description="Maintained a 7-day streak",
        criteria_type=CriteriaType.STREAK_DAYS,
        threshold=7,
        xp_reward=60,
    ),
]

CATEGORY_NAMES: dict[BadgeCategory, str] = {
    BadgeCategory.GETTING_STARTED: "Getting Started",
    BadgeCategory.CONSISTENCY: "Consistency",
    BadgeCategory.DEPTH: "Detail & Depth",
    BadgeCategory.EMOTION: "Emotional Range",
    BadgeCategory.INSIGHT: "Self-Insight",
}


def get_badge_definition(badge_id: str) -> BadgeDefinition | None:
    return next((b for b in BADGE_DEFINITIONS if b.id == badge_id), None)


def get_badges_by_category(category: BadgeCategory) -> list[BadgeDefinition]:
    return [b for b in BADGE_DEFINITIONS if b.category == category]


def category_name(category: BadgeCategory) -> str:
    return CATEGORY_NAMES[category]


def badges_collection(uid: str) -> str:
    return f"users/{uid}/badges"


def badge_path(uid: str, badge_id: str) -> str:
    return f"{badges_collection(uid)}/{badge_id}"


# ── Criteria strategies ───────────────────────────────────────────────────────

ProgressFn = Callable[[BadgeDefinition, dict[str, Any], Supplemental], int]


def _emotion_progress(definition: BadgeDefinition, stats: dict[str, Any], supplemental: Supplemental) -> int:
    # Capture screens store lowercase emotion values, the catalog is capitalized.
    wanted = (definition.emotion_type or "").casefold()
    if not wanted:
        return 0
    return sum(count for emotion, count in supplemental.emotion_counts.items() if emotion.casefold() == wanted)


CRITERIA_PROGRESS: dict[CriteriaType, ProgressFn] = {
    CriteriaType.MOMENTS_LOGGED: lambda d, stats, s: int(stats.get("momentsCount") or 0),
    CriteriaType.REFLECTIONS_COMPLETED: lambda d, stats, s: s.reflection_days,
    CriteriaType.TAGS_ADDED: lambda d, stats, s: s.depth_moments,
    CriteriaType.EMOTION_LOGGED: _emotion_progress,
    CriteriaType.STREAK_DAYS: lambda d, stats, s: int(stats.get("streakDays") or 0),
    CriteriaType.PATTERNS_VIEWED: lambda d, stats, s: int(stats.get("patternsViewed") or 0),
}


def progress_for(definition: BadgeDefinition, stats: dict[str, Any], supplemental: Supplemental) -> int:
    """Current progress of one badge. Unknown criteria report 0."""
    strategy = CRITERIA_PROGRESS.get(definition.criteria_type)
    if strategy is None:
        return 0
    return strategy(definition, stats, supplemental)


def load_supplemental(db: Database, uid: str) -> Supplemental:
    moments = summarize_moments(load_moments(db, uid))
    reflections = summarize_reflections(load_reflections(db, uid))
    return Supplemental(
        reflection_days=len(reflections.completed_dates),
        depth_moments=moments.depth_moments,
        emotion_counts=moments.emotion_counts,
    )


# ── Engine ────────────────────────────────────────────────────────────────────


def _evaluate_badge(
    db: Database,
    uid: str,
    definition: BadgeDefinition,
    stats: dict[str, Any],
    supplemental: Supplemental,
    now_iso: str,
) -> BadgeStatus:
    progress = progress_for(definition, stats, supplemental)
    target = definition.threshold
    qualifies = target > 0 and progress >= target
    path = badge_path(uid, definition.id)

    def write(tx: Transaction) -> BadgeStatus:
        existing = tx.get(path) or {}
        was_earned = bool(existing.get("earned"))
        # Earned never goes back to False, even if progress later drops.
        earned = was_earned or qualifies
        if was_earned:
            earned_at = existing.get("earnedAt") or now_iso
        else:
            earned_at = now_iso if earned else None
        tx.set(path, {
            "earned": earned,
            "earnedAt": earned_at,
            "progressCurrent": progress,
            "progressTarget": target,
            "progressText": f"{progress}/{target}",
            "category": definition.category.value,
        }, merge=True)
        return BadgeStatus(
            definition=definition,
            progress_current=progress,
            progress_target=target,
            earned=earned,
            earned_at=earned_at,
            newly_earned=earned and not was_earned,
        )

    return db.run_transaction(write)


def reconcile_badges(db: Database, uid: str, *, now: datetime | None = None) -> list[BadgeStatus]:
    """Evaluate every badge against the aggregate and persist progress.

    Returns [] if the user has no aggregate yet. A badge whose evaluation fails
    is logged and skipped; the others are still written.
    """
    stats = StatsRepository(db, uid).get()
    if stats is None:
        return []

    supplemental = load_supplemental(db, uid)
    now_iso = to_iso(now or utc_now())

    statuses: list[BadgeStatus] = []
    for definition in BADGE_DEFINITIONS:
        try:
            status = _evaluate_badge(db, uid, definition, stats, supplemental, now_iso)
        except Exception:
            logger.exception("Badge %s evaluation failed for %s", definition.id, uid)
            continue
        statuses.append(status)
        if status.newly_earned:
            logger.info("Badge %s earned by %s", definition.id, uid)
    return statuses


def get_newly_earned(statuses: list[BadgeStatus]) -> list[BadgeDefinition]:
    return [s.definition for s in statuses if s.newly_earned]


def get_badge_records(db: Database, uid: str) -> dict[str, dict[str, Any]]:
    """Stored badge records keyed by badge id."""
    return dict(db.list_collection(badges_collection(uid)))


def award_badge(db: Database, uid: str, badge_id: str, *, now: datetime | None = None) -> BadgeAwardResult:
    """Mark a badge earned regardless of progress. Idempotent."""
    definition = get_badge_definition(badge_id)
    if definition is None or not uid:
        return BadgeAwardResult(success=False, already_earned=False)

    path = badge_path(uid, badge_id)
    now_iso = to_iso(now or utc_now())

    def write(tx: Transaction) -> bool:
        existing = tx.get(path)
        if existing and existing.get("earned"):
            return True
        target = definition.threshold
        tx.set(path, {
            "earned": True,
            "earnedAt": now_iso,
            "progressCurrent": target,
            "progressTarget": target,
            "progressText": f"{target}/{target}",
            "category": definition.category.value,
        }, merge=True)
        return False

    already = db.run_transaction(write)
    return BadgeAwardResult(success=True, already_earned=already, badge=definition)


def set_active_badge(db: Database, uid: str, badge_id: str | None) -> bool:
    """Select the badge shown next to the user's level. None clears it."""
    if not uid:
        return False
    if badge_id is not None and get_badge_definition(badge_id) is None:
        logger.warning("Refusing unknown active badge %r for %s", badge_id, uid)
        return False
    repo = StatsRepository(db, uid)
    repo.ensure()
    repo.merge({"activeBadgeId": badge_id}, USER_FIELDS)
    return True


def get_active_badge(db: Database, uid: str) -> BadgeDefinition | None:
    if not uid:
        return None
    stats = StatsRepository(db, uid).get() or {}
    active_id = stats.get("activeBadgeId")
    return get_badge_definition(active_id) if active_id else None
