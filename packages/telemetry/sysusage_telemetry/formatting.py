"""Human readable renderings of metric values."""

from __future__ import annotations


def format_percent(value: float) -> str:
    return f"{value:.2f}%"


def format_speed(value: float, speed_label: str) -> str:
    return f"{value:.2f} {speed_label}"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def format_uptime(seconds: float) -> str:
    """Render an uptime as days, hours and minutes, e.g. ``2 days, 1 hour and 5 minutes``."""
    total = int(seconds)
    if total < 60:
        return "Less than one minute"

    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes = rest // 60

    parts = []
    if days:
        parts.append(_plural(days, "day"))
    if hours:
        parts.append(_plural(hours, "hour"))
    if minutes:
        parts.append(_plural(minutes, "minute"))

    if len(parts) == 1:
        return parts[0]
    return ", ".join(parts[:-1]) + " and " + parts[-1]
