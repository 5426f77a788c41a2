"""Reflection streak calculation for journey-ledger."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable

from journey_ledger.clock import parse_date_key

logger = logging.getLogger(__name__)


@dataclass
class StreakResult:
    current_streak: int
    best_streak: int
    is_active_today: bool


def _parse_dates(date_keys: Iterable[str]) -> list[date]:
    """Parse, de-duplicate and sort date keys newest first. Bad keys are dropped."""
    parsed: set[date] = set()
    for key in date_keys:
        value = parse_date_key(key)
        if value is None:
            logger.debug("Ignoring unparseable streak date %r", key)
            continue
        parsed.add(value)
    return sorted(parsed, reverse=True)


def get_streak_from_dates(dates: Iterable[date], reference: date) -> int:
    """Count consecutive days backwards from ``reference`` (0 if it is absent)."""
    date_set = set(dates)
    streak = 0
    current = reference
    while current in date_set:
        streak += 1
        current -= timedelta(days=1)
    return streak


def get_best_streak(sorted_desc: list[date]) -> int:
    """Longest run of consecutive days in a newest-first list of distinct dates."""
    best = 0
    streak = 0
    prev: date | None = None
    for current in sorted_desc:
        if prev is not None and (prev - current).days == 1:
            streak += 1
        else:
            streak = 1
        best = max(best, streak)
        prev = current
    return best


def calculate_reflection_streak(completed_dates: Iterable[str], today: str) -> StreakResult:
    """Calculate the current and best streak from completed reflection dates.

    Rules:
    - Dates are de-duplicated, unparseable keys ignored
    - A gap of exactly one day extends a chain, any larger gap restarts it at 1
    - Best streak = longest chain anywhere in the history
    - Current streak = chain ending today, and 0 if today is not completed yet
    """
    dates = _parse_dates(completed_dates)
    today_date = parse_date_key(today)
    is_active_today = today_date is not None and today_date in dates

    current = get_streak_from_dates(dates, today_date) if is_active_today else 0
    return StreakResult(
        current_streak=current,
        best_streak=get_best_streak(dates),
        is_active_today=is_active_today,
    )
