"""Session-start reconciliation: every pass, in order, each one isolated."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from journey_ledger.badges import BadgeStatus, reconcile_badges
from journey_ledger.clock import as_utc, current_date_key
from journey_ledger.db import Database
from journey_ledger.quests import QuestResult, reconcile_daily_quests
from journey_ledger.reconcile import reconcile_stats_from_data, reconcile_weekly_reset
from journey_ledger.stats import ensure_stats_doc

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    uid: str
    date_key: str
    weekly_reset: bool = False
    stats: dict[str, Any] = field(default_factory=dict)
    badges: list[BadgeStatus] = field(default_factory=list)
    quests: QuestResult | None = None
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


def reconcile_all(db: Database, uid: str, *, now: datetime | None = None) -> SyncReport:
    """Ensure the aggregate, then run weekly reset, stats, badges and daily quests.

    A step that fails is logged and recorded in ``errors``; the remaining steps
    still run.
    """
    now = as_utc(now)
    report = SyncReport(uid=uid, date_key=current_date_key(now))

    def step(name: str, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except Exception as exc:
            logger.exception("Sync step %s failed for %s", name, uid)
            report.errors[name] = str(exc)
            return None

    step("ensure", lambda: ensure_stats_doc(db, uid, now=now))
    report.weekly_reset = bool(step("weekly_reset", lambda: reconcile_weekly_reset(db, uid, now=now)))
    report.stats = step("stats", lambda: reconcile_stats_from_data(db, uid, now=now)) or {}
    report.badges = step("badges", lambda: reconcile_badges(db, uid, now=now)) or []
    report.quests = step("quests", lambda: reconcile_daily_quests(db, uid, report.date_key, now=now))
    return report
