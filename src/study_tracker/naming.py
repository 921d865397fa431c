"""Human-readable backup names derived from why the backup was taken."""
import re
from datetime import datetime
from typing import Callable, NamedTuple

DAILY_DESCRIPTION_PREFIX = "Daily backup for "


def sanitize_for_backup_name(text, max_length: int = 25) -> str:
    """Keep letters, digits and whitespace; whitespace runs become one underscore."""
    if not text:
        return ""
    cleaned = re.sub(r"[^a-zA-Z0-9\s]", "", str(text))
    cleaned = re.sub(r"\s+", "_", cleaned)
    return cleaned[:max_length]


class _Parts(NamedTuple):
    context: dict
    target: str
    subject: str
    date: str


def _suffix(word: str, subject: str) -> str:
    return f" {word} {subject}" if subject else ""


def _paper(context: dict) -> str:
    info = context.get("paperInfo") or {}
    number = sanitize_for_backup_name(info.get("paperNumber"), 10)
    return f"{info.get('session') or 'XX'} {info.get('year') or 'XXXX'} Paper {number or 'X'}"


def _new_target(context: dict) -> str:
    return sanitize_for_backup_name(context.get("newTarget"), 20)


def _cycle(context: dict) -> str:
    return sanitize_for_backup_name(context.get("cycle"), 15) or "revision"


CHANGE_TEMPLATES: dict[str, Callable[[_Parts], str]] = {
    # Subjects
    "add-subject": lambda p: f"Before adding subject {p.target}",
    "delete-subject": lambda p: f"Before deleting subject {p.target}",
    "rename-subject": lambda p: f"Before renaming subject {p.target} to {_new_target(p.context)}",
    # Chapters
    "add-chapter": lambda p: f"Before adding chapter {p.target}{_suffix('to', p.subject)}",
    "delete-chapter": lambda p: f"Before deleting chapter {p.target}{_suffix('from', p.subject)}",
    "rename-chapter": lambda p: (
        f"Before renaming chapter {p.target} to {_new_target(p.context)}{_suffix('in', p.subject)}"
    ),
    "reorder-chapters": lambda p: f"Before reordering chapters{_suffix('in', p.subject)}",
    "complete-chapter": lambda p: f"Before completing chapter {p.target}{_suffix('in', p.subject)}",
    "incomplete-chapter": lambda p: f"Before marking incomplete {p.target}{_suffix('in', p.subject)}",
    # Study sessions
    "add-study-session": lambda p: (
        f"Before adding study session {p.target} on {p.context.get('date') or p.date}{_suffix('for', p.subject)}"
    ),
    "delete-study-session": lambda p: (
        f"Before deleting study session {p.target} from {p.context.get('date') or p.date}"
        f"{_suffix('in', p.subject)}"
    ),
    "edit-study-session": lambda p: f"Before editing study session {p.target}{_suffix('in', p.subject)}",
    # Past papers
    "add-paper": lambda p: f"Before adding paper {_paper(p.context)}{_suffix('for', p.subject)}",
    "delete-paper": lambda p: f"Before deleting paper {_paper(p.context)}{_suffix('from', p.subject)}",
    "edit-paper": lambda p: f"Before editing paper {_paper(p.context)}{_suffix('in', p.subject)}",
    # Revisions
    "complete-revision": lambda p: (
        f"Before completing revision {p.target} {_cycle(p.context)}{_suffix('for', p.subject)}"
    ),
    "reset-revision": lambda p: (
        f"Before resetting revision {p.target} {_cycle(p.context)}{_suffix('in', p.subject)}"
    ),
    "dismiss-overdue": lambda p: f"Before dismissing overdue revisions{_suffix('for', p.subject)}",
    # Bulk
    "bulk-delete-chapters": lambda p: f"Before bulk deleting chapters{_suffix('in', p.subject)}",
    "bulk-complete-chapters": lambda p: f"Before bulk completing chapters{_suffix('in', p.subject)}",
    "clear-all-revisions": lambda p: f"Before clearing all revisions{_suffix('in', p.subject)}",
    "reset-subject-progress": lambda p: f"Before resetting progress{_suffix('for', p.subject)}",
    # Import
    "merge-data": lambda p: (
        f"Before merging data from {sanitize_for_backup_name(p.context.get('source'), 15) or 'external'}"
    ),
    # Maintenance
    "cleanup-old-sessions": lambda p: f"Before cleaning up old sessions{_suffix('in', p.subject)}",
    "archive-completed": lambda p: f"Before archiving completed chapters{_suffix('in', p.subject)}",
    "reset-all-data": lambda p: "Before resetting all data",
}


def _split_timestamp(timestamp: str) -> tuple[str, str]:
    moment = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    return moment.date().isoformat(), moment.strftime("%H%M")


def _daily_date(context: dict, fallback: str) -> str:
    if context.get("date"):
        return context["date"]
    description = context.get("description") or ""
    if description.startswith(DAILY_DESCRIPTION_PREFIX):
        return description[len(DAILY_DESCRIPTION_PREFIX):]
    return fallback


def generate_backup_name(context: dict, timestamp: str) -> str:
    """Name a backup from its context and ISO creation timestamp.

    Daily snapshots are labelled with the business day the caller intended
    (``context["date"]``), which can differ from the UTC date of
    ``timestamp`` when the job fires near midnight in the reference timezone.
    """
    date_str, time_str = _split_timestamp(timestamp)
    backup_type = context.get("type")
    action = context.get("action")

    if backup_type == "daily":
        return f"Daily snapshot {_daily_date(context, date_str)}"

    if backup_type == "safety":
        if action == "pre-restore":
            target = sanitize_for_backup_name(context.get("target"), 20)
            return "Safety backup before restore" + (f" from {target}" if target else "")
        if action == "pre-import":
            return f"Safety backup before import on {date_str} at {time_str}"
        return f"Safety backup {date_str} at {time_str}"

    if backup_type == "change":
        parts = _Parts(
            context=context,
            target=sanitize_for_backup_name(context.get("target"), 15),
            subject=sanitize_for_backup_name(context.get("subject"), 12),
            date=date_str,
        )
        template = CHANGE_TEMPLATES.get(action)
        if template:
            return template(parts)
        target = f" {parts.target}" if parts.target else ""
        return f"Before {action}{target}{_suffix('in', parts.subject)}"

    if backup_type == "manual":
        if context.get("description"):
            desc = sanitize_for_backup_name(context["description"], 30)
            return f"Manual backup: {desc} on {date_str} at {time_str}"
        return f"Manual checkpoint {date_str} at {time_str}"

    if backup_type == "auto":
        return f"Auto backup on significant changes {date_str} at {time_str}"

    return f"Backup {date_str} at {time_str}"
