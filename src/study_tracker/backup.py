"""Dataset snapshots: create, list, restore, import/export, daily dedup.

Backups live under ``userData/<user>/backups/<backupId>`` and are never
modified after they are written. Restore and import always snapshot the live
dataset first; if that safety backup cannot be written the operation stops
before anything is overwritten.
"""
import asyncio
import copy
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

from study_tracker.config import BACKUP_HISTORY_LIMIT, BACKUP_KEEP_COUNT, USER_ID
from study_tracker.db import SERVER_TIMESTAMP
from study_tracker.errors import InvalidFormat, NotFound
from study_tracker.models import BACKUP_TYPES, Subject
from study_tracker.naming import DAILY_DESCRIPTION_PREFIX, generate_backup_name

logger = logging.getLogger(__name__)

# "Today" for daily snapshots is always computed in UTC+5:30, wherever this runs.
REFERENCE_TZ = timezone(timedelta(hours=5, minutes=30), "IST")

PersistSubjects = Callable[[list], Awaitable[None]]
PersistDismissed = Callable[[set], Awaitable[None]]


def today_in_reference_tz(now: datetime) -> str:
    return now.astimezone(REFERENCE_TZ).date().isoformat()


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a ``Z`` suffix."""
    utc = moment.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def epoch_millis(moment: datetime) -> int:
    return int(moment.timestamp()) * 1000 + moment.microsecond // 1000


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _plain_subjects(subjects) -> list[dict]:
    return [s.to_dict() if hasattr(s, "to_dict") else s for s in subjects or []]


def snapshot_user_data(user_data: dict) -> dict:
    """Detached copy of a dataset, with dismissed revisions as a sorted list."""
    return {
        "subjects": copy.deepcopy(_plain_subjects(user_data.get("subjects"))),
        "dismissedRevisions": sorted(user_data.get("dismissedRevisions") or []),
    }


def backup_metadata(subjects: list[dict]) -> dict:
    return {
        "subjectCount": len(subjects),
        "totalChapters": sum(len(s.get("chapters") or []) for s in subjects),
        "totalStudySessions": sum(len(s.get("studySessions") or []) for s in subjects),
    }


class BackupService:
    """Snapshot lifecycle for one user's dataset.

    ``now`` returns the current aware datetime; it drives backup ids,
    timestamps and the reference day, and is replaced with a fake clock in
    tests.
    """

    def __init__(self, store, user_id: str = USER_ID, now: Callable[[], datetime] | None = None):
        self.store = store
        self.user_id = user_id
        self._now = now or _utc_now
        # Reference day -> pending daily backup creation
        self._daily_in_flight: dict[str, asyncio.Future] = {}

    @property
    def user_doc_path(self) -> str:
        return f"userData/{self.user_id}"

    @property
    def backups_collection(self) -> str:
        return f"{self.user_doc_path}/backups"

    def _backup_path(self, backup_id: str) -> str:
        return f"{self.backups_collection}/{backup_id}"

    # Live dataset

    async def get_current_user_data(self) -> dict:
        doc = await self.store.get(self.user_doc_path) or {}
        return {
            "subjects": doc.get("subjects") or [],
            "dismissedRevisions": set(doc.get("dismissedRevisions") or []),
        }

    # Backups

    async def create_backup(self, user_data: dict, context: dict | None = None) -> str:
        """Write a new backup of ``user_data`` and return its id.

        Ids are ``backup_<epoch-ms>``; two backups created in the same
        millisecond would share an id and the second would replace the first.
        """
        context = context or {}
        if context.get("type") and context["type"] not in BACKUP_TYPES:
            raise ValueError(f"Unknown backup type: {context['type']!r}")
        data = snapshot_user_data(user_data)
        moment = self._now()
        timestamp = format_timestamp(moment)
        backup_id = f"backup_{epoch_millis(moment)}"
        name = generate_backup_name(context, timestamp)

        record = {
            "id": backup_id,
            "name": name,
            "timestamp": timestamp,
            "backupType": context.get("type") or "manual",
            "action": context.get("action") or "manual-backup",
            "target": context.get("target") or None,
            "description": context.get("description") or name,
            "data": data,
            "metadata": backup_metadata(data["subjects"]),
            "createdAt": SERVER_TIMESTAMP,
        }
        await self.store.set(self._backup_path(backup_id), record)
        logger.info("Backup created: %s (%s)", name, backup_id)
        return backup_id

    async def get_backup_history(self, limit: int | None = BACKUP_HISTORY_LIMIT) -> list[dict]:
        """Backups newest first; ``limit=None`` returns all of them."""
        return await self.store.list_ordered(self.backups_collection, "timestamp", "desc", limit)

    async def get_backup(self, backup_id: str) -> dict | None:
        doc = await self.store.get(self._backup_path(backup_id))
        if doc is None:
            return None
        return {**doc, "id": backup_id}

    async def delete_backup(self, backup_id: str) -> None:
        await self.store.delete(self._backup_path(backup_id))
        logger.info("Backup deleted: %s", backup_id)

    async def cleanup_old_backups(self, keep_count: int = BACKUP_KEEP_COUNT) -> int:
        """Delete all but the ``keep_count`` newest backups. Returns how many were deleted."""
        history = await self.get_backup_history(limit=None)
        stale = history[keep_count:]
        for backup in stale:
            await self.delete_backup(backup["id"])
        if stale:
            logger.info("Cleaned up %d old backups", len(stale))
        return len(stale)

    # Restore / import / export

    async def _apply(self, data: dict, persist_subjects, persist_dismissed) -> None:
        if data.get("subjects") is not None:
            await persist_subjects(data["subjects"])
        if data.get("dismissedRevisions") is not None:
            await persist_dismissed(set(data["dismissedRevisions"]))

    async def restore_from_backup(
        self,
        backup_id: str,
        persist_subjects: PersistSubjects,
        persist_dismissed_revisions: PersistDismissed,
    ) -> dict:
        backup = await self.get_backup(backup_id)
        if backup is None:
            raise NotFound(f"Backup not found: {backup_id}")
        label = backup.get("name") or backup_id
        data = backup.get("data") or {}

        current = await self.get_current_user_data()
        await self.create_backup(current, {
            "type": "safety",
            "action": "pre-restore",
            "target": label,
            "description": f"Safety backup before restoring from {label}",
        })

        await self._apply(data, persist_subjects, persist_dismissed_revisions)
        logger.info("Data restored from backup: %s", label)
        return data

    async def import_from_json(
        self,
        json_text: str,
        persist_subjects: PersistSubjects,
        persist_dismissed_revisions: PersistDismissed,
    ) -> dict:
        try:
            payload = json.loads(json_text)
        except (TypeError, ValueError) as e:
            raise InvalidFormat(f"Backup file is not valid JSON: {e}") from e

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise InvalidFormat("Invalid backup file format: missing 'data' object")
        subjects = data.get("subjects")
        dismissed = data.get("dismissedRevisions")
        if subjects is None and dismissed is None:
            raise InvalidFormat("Invalid backup file format: no subjects or dismissedRevisions")
        if subjects is not None and not isinstance(subjects, list):
            raise InvalidFormat("Invalid backup file format: 'subjects' must be a list")
        if dismissed is not None and not isinstance(dismissed, list):
            raise InvalidFormat("Invalid backup file format: 'dismissedRevisions' must be a list")
        if subjects is not None:
            try:
                for subject in subjects:
                    Subject.from_dict(subject)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                raise InvalidFormat(f"Invalid backup file format: malformed subject ({e!r})") from e
        if dismissed is not None and not all(isinstance(key, str) for key in dismissed):
            raise InvalidFormat("Invalid backup file format: dismissed revision keys must be strings")

        current = await self.get_current_user_data()
        await self.create_backup(current, {
            "type": "safety",
            "action": "pre-import",
            "description": "Safety backup before importing JSON data",
        })

        await self._apply(data, persist_subjects, persist_dismissed_revisions)
        logger.info("Data imported from JSON")
        return data

    async def export_backup_as_json(self, backup_id: str) -> str:
        backup = await self.get_backup(backup_id)
        if backup is None:
            raise NotFound(f"Backup not found: {backup_id}")
        return json.dumps(backup, indent=2)

    # Daily snapshot

    async def create_daily_backup_if_needed(self, user_data: dict) -> str | None:
        """Create today's daily snapshot unless one exists or the dataset is empty.

        Concurrent callers for the same reference day share a single
        creation and all receive its result.
        """
        today = today_in_reference_tz(self._now())
        pending = self._daily_in_flight.get(today)
        if pending is None:
            pending = asyncio.ensure_future(
                self._create_daily_backup(today, snapshot_user_data(user_data))
            )
            self._daily_in_flight[today] = pending
            pending.add_done_callback(lambda fut: self._forget_daily(today, fut))
        else:
            logger.debug("Daily backup for %s already in progress, waiting", today)
        return await asyncio.shield(pending)

    def _forget_daily(self, today: str, fut: asyncio.Future) -> None:
        if self._daily_in_flight.get(today) is fut:
            del self._daily_in_flight[today]

    async def _create_daily_backup(self, today: str, user_data: dict) -> str | None:
        marker = f"Daily snapshot {today}"
        recent = await self.get_backup_history(BACKUP_HISTORY_LIMIT)
        existing = next(
            (b for b in recent if b.get("backupType") == "daily" and marker in (b.get("name") or "")),
            None,
        )
        if existing:
            logger.debug("Daily backup for %s already exists: %s", today, existing["id"])
            return None
        if not user_data["subjects"]:
            logger.info("No subjects found, skipping daily backup for %s", today)
            return None
        return await self.create_backup(user_data, {
            "type": "daily",
            "action": "daily-snapshot",
            "date": today,
            "description": f"{DAILY_DESCRIPTION_PREFIX}{today}",
        })
