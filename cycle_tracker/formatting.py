"""
Text formatting helpers for durations, decimals and the status lines shown in
the tray menu and by the status command.
"""

import math
from typing import List, Optional

PLACEHOLDER = "—"


def format_duration(seconds: Optional[float]) -> str:
    """
    Format seconds as abbreviated hours and minutes, e.g. "1h 5m".

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted text, or the placeholder for a missing/negative value
    """
    if seconds is None or seconds < 0:
        return PLACEHOLDER

    total_minutes = int(seconds // 60)
    hours, minutes = divmod(total_minutes, 60)
    if hours and minutes:
        return f"{hours}h {minutes}m"
    if hours:
        return f"{hours}h"
    return f"{minutes}m"


def format_clock_duration(seconds: Optional[float]) -> str:
    """Format seconds with padded hours, minutes and seconds, e.g. "2h 05m 09s"."""
    if seconds is None or seconds < 0:
        return PLACEHOLDER

    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours}h {minutes:02d}m {secs:02d}s"


def format_decimal(value: Optional[float]) -> str:
    return PLACEHOLDER if value is None else f"{value:.2f}"


def status_lines(snapshot) -> List[str]:
    """
    Build the human-facing status lines for a snapshot.

    Args:
        snapshot: StatusSnapshot from the engine

    Returns:
        List of display lines
    """
    lines = []

    if snapshot.cycle_count is not None and snapshot.target_total_cycles:
        progress = snapshot.cycle_count / snapshot.target_total_cycles * 100.0
        lines.append(f"Cycles: {snapshot.cycle_count} ({progress:.2f}%)")
    else:
        lines.append(f"Cycles: {PLACEHOLDER if snapshot.cycle_count is None else snapshot.cycle_count}")

    if snapshot.mah_to_next_cycle is not None and snapshot.max_capacity:
        percent = (1.0 - snapshot.mah_to_next_cycle / snapshot.max_capacity) * 100.0
        lines.append(f"Cycle Completion: {percent:.2f}%")

    official = (
        f"{snapshot.official_health_percent}%"
        if snapshot.official_health_percent is not None
        else PLACEHOLDER
    )
    lines.append(
        f"Battery Health: {snapshot.health_text or 'Unknown'} | {official}"
    )

    if None not in (snapshot.current_capacity, snapshot.max_capacity, snapshot.design_capacity):
        lines.append(
            f"Capacity: {snapshot.current_capacity}/{snapshot.max_capacity} "
            f"({snapshot.design_capacity}) mAh"
        )
    else:
        lines.append("Capacity: Unknown")

    lines.append(
        f"Cycles Today: {PLACEHOLDER if snapshot.cycles_today is None else snapshot.cycles_today}"
    )
    lines.append(snapshot.time_remaining.text)
    lines.append(snapshot.time_to_threshold.text)

    if snapshot.cycles_per_day_needed is not None:
        rounded_up = math.ceil(snapshot.cycles_per_day_needed)
        lines.append(
            f"Cycles Per Day by Deadline: {rounded_up} "
            f"({format_decimal(snapshot.cycles_per_day_needed)})"
        )
    else:
        lines.append(f"Cycles Per Day by Deadline: {PLACEHOLDER}")

    lines.append(
        "mAh to Next Cycle: "
        f"{PLACEHOLDER if snapshot.mah_to_next_cycle is None else snapshot.mah_to_next_cycle}"
    )
    lines.append(snapshot.time_to_next_cycle.text)
    return lines
