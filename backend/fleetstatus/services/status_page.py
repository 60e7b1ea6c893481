"""Public status page calculations - overall status, uptime, and incident timelines."""
from typing import Dict, Iterable, List

from ..models import IncidentUpdate

SERVER_STATUSES = ("up", "down", "degraded", "maintenance")


def overall_status(counts: Dict[str, int]) -> str:
    """Collapse per-status server counts into one status page headline.

    Any down server is an outage, any degraded server is degraded, and the
    page only shows maintenance when nothing is up.
    """
    if counts.get("down", 0) > 0:
        return "outage"
    if counts.get("degraded", 0) > 0:
        return "degraded"
    if counts.get("maintenance", 0) > 0 and counts.get("up", 0) == 0:
        return "maintenance"
    return "operational"


def uptime_percentage(statuses: Iterable[str]) -> float:
    """Share of recorded status changes that were not "down", as a percentage."""
    statuses = list(statuses)
    if not statuses:
        return 100.0
    down = sum(1 for s in statuses if s == "down")
    return max(0.0, (len(statuses) - down) / len(statuses) * 100)


def public_updates(updates: Iterable[IncidentUpdate]) -> List[IncidentUpdate]:
    """Timeline shown publicly: newest first, without the opening update.

    The opening update repeats the incident description, so it is dropped.
    """
    ordered = sorted(updates, key=lambda u: (u.created_at, u.id))
    return list(reversed(ordered[1:]))
