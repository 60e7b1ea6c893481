"""Formatting helpers for alert emails and API payloads."""
from datetime import date, datetime
from typing import Optional

BYTES_PER_MB = 1024 * 1024


def format_file_size(size_bytes: Optional[int]) -> str:
    """Format a byte count in human readable form.

    Args:
        size_bytes: Size in bytes, or None when unknown.

    Returns:
        "-" for unknown sizes, otherwise B/KB/MB/GB with two decimals.
    """
    if size_bytes is None:
        return "-"
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < BYTES_PER_MB:
        return f"{size_bytes / 1024:.2f} KB"
    elif size_bytes < BYTES_PER_MB * 1024:
        return f"{size_bytes / BYTES_PER_MB:.2f} MB"
    else:
        return f"{size_bytes / (BYTES_PER_MB * 1024):.2f} GB"


def format_timestamp(dt: Optional[datetime], fallback: str = "Never") -> str:
    if dt is None:
        return fallback
    return dt.strftime("%Y-%m-%d %H:%M UTC")


def format_date(d: date) -> str:
    return d.strftime("%b %d, %Y")


def plural(count: int, word: str) -> str:
    """Return "1 day" / "3 days" style phrases."""
    return f"{count} {word}{'' if count == 1 else 's'}"


def review_status_text(days_until_review: int) -> str:
    """Describe how far a server is from its backup monitoring review date."""
    if days_until_review < 0:
        return f"{plural(abs(days_until_review), 'day')} overdue"
    if days_until_review == 0:
        return "Due today"
    return f"Due in {plural(days_until_review, 'day')}"
