"""Level calculation from cumulative XP. Pure functions, no side effects."""

from __future__ import annotations

from dataclasses import dataclass

LEVEL_THRESHOLDS: list[int] = [0, 50, 200, 600, 1500, 3500, 7500]

# Translation keys, resolved by the client.
LEVEL_NAMES: list[str] = [
    "levels.beginner",
    "levels.explorer",
    "levels.seeker",
    "levels.adept",
    "levels.navigator",
    "levels.guide",
    "levels.sage",
]

MAX_LEVEL = len(LEVEL_THRESHOLDS)


@dataclass
class LevelProgress:
    level: int
    level_name: str
    current_level_min_xp: int
    next_level_xp: int | None  # None at max level
    progress_to_next: float  # 0.0 to 1.0
    xp_remaining: int | None
    is_max_level: bool


def compute_level(total_xp: int, thresholds: list[int] | None = None) -> int:
    """Given cumulative XP, return the level (1..len(thresholds)).

    Level is 1 + the index of the highest threshold reached, so XP=0 is level 1
    and anything past the last threshold stays at the top level.
    """
    table = thresholds or LEVEL_THRESHOLDS
    level = 1
    for index, threshold in enumerate(table):
        if total_xp >= threshold:
            level = index + 1
    return min(level, len(table))


def compute_level_name(level: int, names: list[str] | None = None) -> str:
    """Return the display name for a level, clamping out-of-range levels."""
    table = names or LEVEL_NAMES
    index = min(max(level, 1), len(table)) - 1
    return table[index]


def level_progress(total_xp: int) -> LevelProgress:
    """Return where ``total_xp`` sits between the current and next threshold."""
    total_xp = max(0, total_xp)
    level = compute_level(total_xp)
    current_min = LEVEL_THRESHOLDS[level - 1]
    is_max = level >= MAX_LEVEL

    if is_max:
        return LevelProgress(
            level=level,
            level_name=compute_level_name(level),
            current_level_min_xp=current_min,
            next_level_xp=None,
            progress_to_next=1.0,
            xp_remaining=None,
            is_max_level=True,
        )

    next_xp = LEVEL_THRESHOLDS[level]
    span = next_xp - current_min
    return LevelProgress(
        level=level,
        level_name=compute_level_name(level),
        current_level_min_xp=current_min,
        next_level_xp=next_xp,
        progress_to_next=(total_xp - current_min) / span,
        xp_remaining=next_xp - total_xp,
        is_max_level=False,
    )
