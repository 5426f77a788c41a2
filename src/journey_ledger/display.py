"""Rich terminal display for journey-ledger."""

from __future__ import annotations

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

# Level index -> Rich color
_LEVEL_COLORS: list[str] = [
    "grey70",
    "green",
    "deep_sky_blue1",
    "cyan",
    "purple",
    "gold1",
    "orange_red1",
]


def level_color(level: int) -> str:
    """Map a level to a Rich color name, clamping out-of-range levels."""
    index = min(max(level, 1), len(_LEVEL_COLORS)) - 1
    return _LEVEL_COLORS[index]


def format_number(n: int) -> str:
    """Format large numbers: 421543 -> '421.5K', 1200 -> '1,200', 1234567 -> '1.2M'."""
    if n >= 1_000_000:
        return f"{n / 1_000_000:.1f}M"
    if n >= 10_000:
        return f"{n / 1_000:.1f}K"
    return f"{n:,}"


def _xp_bar(current: int, total: int, width: int = 20) -> str:
    """Render a progress bar as text: [████████░░░░░░░░░░░░]."""
    if total <= 0:
        return "[" + "█" * width + "]"
    ratio = min(current / total, 1.0)
    filled = int(ratio * width)
    empty = width - filled
    return "[" + "█" * filled + "░" * empty + "]"


def print_status(data: dict) -> None:
    """Print the progress panel: level, XP bar, weekly XP, streaks, active badge."""
    level = data.get("level", 1)
    color = level_color(level)
    total_xp = data.get("total_xp", 0)
    current_min = data.get("current_level_min_xp", 0)
    next_xp = data.get("next_level_xp")
    active_badge = data.get("active_badge")

    lines: list[str] = []
    lines.append("")
    lines.append(f"  [bold {color}]Level {level} - {data.get('level_name', '')}[/]")

    if next_xp is not None:
        bar = _xp_bar(total_xp - current_min, next_xp - current_min)
        lines.append(f"  {bar} {format_number(total_xp)}/{format_number(next_xp)} XP")
        lines.append(f"  {format_number(data.get('xp_remaining', 0))} XP to next level")
    else:
        lines.append(f"  {_xp_bar(1, 1)} MAX LEVEL")
    lines.append(f"  Total: [bold]{format_number(total_xp)}[/] XP  |  This week: {format_number(data.get('weekly_xp', 0))} XP")

    lines.append("")
    lines.append(
        f"  \U0001f525 Streak: {data.get('streak_days', 0)} days  |  "
        f"Best: {data.get('best_streak_days', 0)} days"
    )
    lines.append(
        f"  \U0001f4dd Moments: {format_number(data.get('moments_count', 0))}  |  "
        f"\U0001f4ad Reflections: {format_number(data.get('reflections_count', 0))}"
    )
    lines.append(f"  \U0001f9ed Journey: day {data.get('journey_day', 0)}/7")

    if active_badge:
        lines.append("")
        lines.append(f"  Active badge: {active_badge['icon']} {active_badge['name']}")

    lines.append("")
    panel = Panel(
        "\n".join(lines),
        title="[bold]JOURNEY[/]",
        box=box.ROUNDED,
        border_style=color,
        width=56,
    )
    console.print(panel)


def print_badges(badges: list[dict]) -> None:
    """Print the badge catalog with progress.

    Each dict has: id, icon, name, description, category, earned (bool),
    earned_at (str|None), current (int), target (int).
    """
    earned = [b for b in badges if b.get("earned")]
    locked = [b for b in badges if not b.get("earned")]
    earned.sort(key=lambda b: b.get("earned_at") or "", reverse=True)
    locked.sort(key=lambda b: b["current"] / b["target"] if b.get("target") else 0, reverse=True)

    table = Table(
        title="Badges",
        box=box.ROUNDED,
        show_header=True,
        header_style="bold",
    )
    table.add_column("", width=2)
    table.add_column("Badge", min_width=24)
    table.add_column("Category", width=16)
    table.add_column("Progress", min_width=18)
    table.add_column("Earned", width=12)

    for badge in earned + locked:
        mark = "✅" if badge.get("earned") else badge.get("icon", "")
        name_text = f"[bold]{badge['name']}[/]\n{badge.get('description', '')}"
        current_val = badge.get("current", 0)
        target_val = badge.get("target", 0)
        progress_text = f"{_xp_bar(current_val, target_val, width=10)} {current_val}/{target_val}"
        date_text = (badge.get("earned_at") or "")[:10]
        table.add_row(mark, name_text, badge.get("category", ""), progress_text, date_text)

    console.print(table)


def print_sync_report(data: dict) -> None:
    """Print reconciliation results."""
    lines: list[str] = []
    lines.append("")
    lines.append(f"  Date:            {data.get('date_key', '')}")
    lines.append(f"  Weekly reset:    {'yes' if data.get('weekly_reset') else 'no'}")
    lines.append(f"  Moments:         {data.get('moments_count', 0)}")
    lines.append(f"  Reflections:     {data.get('reflections_count', 0)}")
    lines.append(f"  Streak:          {data.get('streak_days', 0)} days")
    lines.append(f"  Badges earned:   {data.get('badges_earned', 0)}/{data.get('badges_total', 0)}")

    quest_awards = data.get("quest_awards", [])
    if quest_awards:
        lines.append("")
        lines.append("  [bold]Quest XP:[/]")
        for key in quest_awards:
            lines.append(f"  ✨ {key}")

    new_badges = data.get("new_badges", [])
    if new_badges:
        lines.append("")
        lines.append("  [bold]New Badges:[/]")
        for name in new_badges:
            lines.append(f"  \U0001f3c6 {name}")

    errors = data.get("errors", {})
    if errors:
        lines.append("")
        lines.append("  [bold red]Failed steps:[/]")
        for step, message in errors.items():
            lines.append(f"  [red]{step}: {message}[/]")

    lines.append("")
    panel = Panel(
        "\n".join(lines),
        title="[bold]Sync Complete[/]" if not errors else "[bold]Sync Partially Complete[/]",
        box=box.ROUNDED,
        border_style="green" if not errors else "yellow",
        width=56,
    )
    console.print(panel)


def print_award_result(result: dict) -> None:
    """Print the outcome of an XP grant."""
    if result.get("awarded"):
        content = (
            f"\n  +{result.get('amount', 0)} XP for [bold]{result.get('key', '')}[/]\n"
            f"  Level {result.get('level', 1)}\n"
        )
        border = "green"
    else:
        content = f"\n  [bold]{result.get('key', '')}[/] was not awarded (already granted or invalid).\n"
        border = "grey50"
    console.print(Panel(content, title="[bold]XP[/]", box=box.ROUNDED, border_style=border, width=56))


def print_reflection_result(record: dict) -> None:
    """Print the state of a daily reflection after an answer was saved."""
    answered = record.get("answered", 0)
    lines = ["", f"  Reflection {record.get('dateKey', '')}: {answered}/3 answered"]
    if record.get("completed"):
        lines.append("  [bold green]Completed![/]")
    lines.append("")
    console.print(Panel("\n".join(lines), title="[bold]Daily Reflection[/]", box=box.ROUNDED, width=56))


def print_no_data_message() -> None:
    """Print message when the user has no progress yet."""
    panel = Panel(
        "\n  No progress yet. Run [bold]journey-ledger sync[/] after logging a moment.\n",
        title="[bold]JOURNEY[/]",
        box=box.ROUNDED,
        border_style="grey50",
        width=56,
    )
    console.print(panel)


def print_error(message: str) -> None:
    console.print(f"[red]{message}[/]")
