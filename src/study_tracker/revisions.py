"""Fixed-interval spaced repetition schedule.

A study session gets four revisions at +3, +7, +14 and +30 days. Completing
the last revision in the list appends a maintenance revision 30 days after
it, so the chain continues for as long as the tail keeps being completed.
"""
from datetime import date, timedelta

from study_tracker.models import Revision

INITIAL_OFFSETS = (3, 7, 14, 30)
MAINTENANCE_DAYS = 30
MAINTENANCE_CYCLE = "Maintenance (30 days)"


def add_days(day: str, days: int) -> str:
    """Add whole days to a YYYY-MM-DD string."""
    return (date.fromisoformat(day) + timedelta(days=days)).isoformat()


def revision_key(session_id, index: int) -> str:
    """Key used to remember that an overdue notice was dismissed."""
    return f"{session_id}-{index}"


def schedule_initial_revisions(study_date: str) -> list[Revision]:
    return [
        Revision(id=f"rev-{i}", date=add_days(study_date, days), cycle=f"Day {days}")
        for i, days in enumerate(INITIAL_OFFSETS)
    ]


def extend_with_maintenance(revisions: list[Revision], anchor_date: str) -> Revision:
    """Build the maintenance revision that follows ``revisions``.

    Args:
        revisions: The session's current revision list (not modified).
        anchor_date: Date of the revision that was just completed.

    Returns:
        A new incomplete revision, ``MAINTENANCE_DAYS`` after the anchor, whose
        id continues the positional sequence.
    """
    return Revision(
        id=f"rev-{len(revisions)}",
        date=add_days(anchor_date, MAINTENANCE_DAYS),
        cycle=MAINTENANCE_CYCLE,
    )


def is_overdue(revision: Revision, as_of: str) -> bool:
    return revision.date < as_of and not revision.completed


def is_due_today(revision: Revision, as_of: str) -> bool:
    return revision.date == as_of
