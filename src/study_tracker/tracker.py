"""In-memory study data and its persistence.

``StudySessionStore`` owns the subjects list and the set of dismissed overdue
notices, mutates them on user actions and writes them back to the
``userData/<user>`` document. Each save also gives the backup service a chance
to take the day's snapshot; destructive edits take a ``change`` backup first.
Both of those backups are best-effort: a failure is logged and the edit goes
ahead.
"""
import logging
from datetime import date, datetime, timezone

from study_tracker.backup import BackupService, epoch_millis
from study_tracker.config import USER_ID
from study_tracker.db import SERVER_TIMESTAMP
from study_tracker.errors import NotFound
from study_tracker.models import PAPER_SESSIONS, Chapter, PastPaper, Revision, StudySession, Subject
from study_tracker.revisions import (
    extend_with_maintenance, is_due_today, is_overdue, revision_key, schedule_initial_revisions,
)

logger = logging.getLogger(__name__)

PAPER_FIELDS = ("session", "year", "paper_number", "score", "hard_chapters")


def _find(items: list, item_id, kind: str):
    for item in items:
        if item.id == item_id:
            return item
    raise NotFound(f"{kind} not found: {item_id}")


def _require_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValueError("Name must not be empty")
    return name


def _validate_date(day: str) -> str:
    return date.fromisoformat(day).isoformat()


def _validate_paper(session: str, score) -> float:
    if session not in PAPER_SESSIONS:
        raise ValueError(f"Paper session must be one of {', '.join(PAPER_SESSIONS)}, got {session!r}")
    score = float(score)
    if not 0 <= score <= 100:
        raise ValueError(f"Score must be between 0 and 100, got {score}")
    return score


class StudySessionStore:

    def __init__(
        self,
        store,
        backups: BackupService,
        user_id: str = USER_ID,
        now=None,
        change_backups: bool = True,
    ):
        self.store = store
        self.backups = backups
        self.user_id = user_id
        self.change_backups = change_backups
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._last_id = 0
        self.subjects: list[Subject] = []
        self.dismissed_revisions: set[str] = set()

    @property
    def user_doc_path(self) -> str:
        return f"userData/{self.user_id}"

    def today(self) -> str:
        return self._now().astimezone().date().isoformat()

    def _next_id(self) -> int:
        # Creation timestamps in ms, bumped so ids stay unique within this process
        self._last_id = max(epoch_millis(self._now()), self._last_id + 1)
        return self._last_id

    # Persistence

    def to_user_data(self) -> dict:
        return {
            "subjects": [s.to_dict() for s in self.subjects],
            "dismissedRevisions": set(self.dismissed_revisions),
        }

    def apply_user_data(self, data: dict) -> None:
        """Replace in-memory state with whichever parts ``data`` carries."""
        if data.get("subjects") is not None:
            self.subjects = [Subject.from_dict(s) for s in data["subjects"]]
        if data.get("dismissedRevisions") is not None:
            self.dismissed_revisions = set(data["dismissedRevisions"])

    async def load(self) -> None:
        doc = await self.store.get(self.user_doc_path) or {}
        self.subjects = []
        self.dismissed_revisions = set()
        self.apply_user_data(doc)
        logger.info("Loaded %d subjects", len(self.subjects))

    async def save_subjects(self, subjects: list) -> None:
        await self.store.set(
            self.user_doc_path,
            {
                "subjects": [s.to_dict() if isinstance(s, Subject) else s for s in subjects],
                "lastUpdated": SERVER_TIMESTAMP,
            },
            merge=True,
        )

    async def save_dismissed_revisions(self, dismissed: set) -> None:
        await self.store.set(
            self.user_doc_path,
            {"dismissedRevisions": sorted(dismissed), "lastUpdated": SERVER_TIMESTAMP},
            merge=True,
        )

    async def save(self) -> None:
        await self.save_subjects(self.subjects)
        await self.save_dismissed_revisions(self.dismissed_revisions)
        try:
            await self.backups.create_daily_backup_if_needed(self.to_user_data())
        except Exception:
            logger.exception("Daily backup check after save failed")

    async def _backup_before(self, action: str, **context) -> None:
        if not self.change_backups:
            return
        try:
            await self.backups.create_backup(
                self.to_user_data(), {"type": "change", "action": action, **context},
            )
        except Exception:
            logger.exception("Change backup before %s failed", action)

    async def restore(self, backup_id: str) -> dict:
        data = await self.backups.restore_from_backup(
            backup_id, self.save_subjects, self.save_dismissed_revisions,
        )
        self.apply_user_data(data)
        return data

    async def import_json(self, json_text: str) -> dict:
        data = await self.backups.import_from_json(
            json_text, self.save_subjects, self.save_dismissed_revisions,
        )
        self.apply_user_data(data)
        return data

    # Subjects

    def get_subject(self, subject_id) -> Subject:
        return _find(self.subjects, subject_id, "Subject")

    async def add_subject(self, name: str) -> Subject:
        subject = Subject(id=self._next_id(), name=_require_name(name))
        self.subjects.append(subject)
        await self.save()
        return subject

    async def delete_subject(self, subject_id) -> None:
        subject = self.get_subject(subject_id)
        await self._backup_before("delete-subject", target=subject.name)
        self.subjects.remove(subject)
        await self.save()

    async def rename_subject(self, subject_id, new_name: str) -> Subject:
        subject = self.get_subject(subject_id)
        new_name = _require_name(new_name)
        await self._backup_before("rename-subject", target=subject.name, newTarget=new_name)
        subject.name = new_name
        await self.save()
        return subject

    # Chapters

    async def add_chapter(self, subject_id, name: str) -> Chapter:
        subject = self.get_subject(subject_id)
        chapter = Chapter(id=self._next_id(), name=_require_name(name))
        subject.chapters.append(chapter)
        await self.save()
        return chapter

    async def delete_chapter(self, subject_id, chapter_id) -> None:
        subject = self.get_subject(subject_id)
        chapter = _find(subject.chapters, chapter_id, "Chapter")
        await self._backup_before("delete-chapter", target=chapter.name, subject=subject.name)
        subject.chapters.remove(chapter)
        await self.save()

    async def rename_chapter(self, subject_id, chapter_id, new_name: str) -> Chapter:
        subject = self.get_subject(subject_id)
        chapter = _find(subject.chapters, chapter_id, "Chapter")
        new_name = _require_name(new_name)
        await self._backup_before(
            "rename-chapter", target=chapter.name, newTarget=new_name, subject=subject.name,
        )
        chapter.name = new_name
        await self.save()
        return chapter

    async def reorder_chapters(self, subject_id, chapter_ids: list) -> None:
        """Put the subject's chapters in the order of ``chapter_ids``."""
        subject = self.get_subject(subject_id)
        by_id = {c.id: c for c in subject.chapters}
        if sorted(chapter_ids) != sorted(by_id):
            raise ValueError("chapter_ids must list every chapter of the subject exactly once")
        await self._backup_before("reorder-chapters", subject=subject.name)
        subject.chapters = [by_id[cid] for cid in chapter_ids]
        await self.save()

    async def toggle_chapter(self, subject_id, chapter_id) -> bool:
        subject = self.get_subject(subject_id)
        chapter = _find(subject.chapters, chapter_id, "Chapter")
        chapter.topicals_completed = not chapter.topicals_completed
        await self.save()
        return chapter.topicals_completed

    # Past papers

    async def add_past_paper(
        self, subject_id, session: str, year: int, paper_number, score, hard_chapters: str = "",
    ) -> PastPaper:
        subject = self.get_subject(subject_id)
        paper = PastPaper(
            id=self._next_id(),
            session=session,
            year=int(year),
            paper_number=paper_number,
            score=_validate_paper(session, score),
            hard_chapters=hard_chapters or "",
        )
        subject.past_papers.append(paper)
        await self.save()
        return paper

    async def edit_past_paper(self, subject_id, paper_id, **changes) -> PastPaper:
        unknown = set(changes) - set(PAPER_FIELDS)
        if unknown:
            raise ValueError(f"Unknown past paper fields: {', '.join(sorted(unknown))}")
        subject = self.get_subject(subject_id)
        paper = _find(subject.past_papers, paper_id, "Past paper")
        session = changes.get("session", paper.session)
        score = _validate_paper(session, changes.get("score", paper.score))
        await self._backup_before("edit-paper", subject=subject.name, paperInfo=paper.to_dict())
        for key, value in changes.items():
            setattr(paper, key, value)
        paper.score = score
        paper.year = int(paper.year)
        await self.save()
        return paper

    async def delete_past_paper(self, subject_id, paper_id) -> None:
        subject = self.get_subject(subject_id)
        paper = _find(subject.past_papers, paper_id, "Past paper")
        await self._backup_before("delete-paper", subject=subject.name, paperInfo=paper.to_dict())
        subject.past_papers.remove(paper)
        await self.save()

    # Study sessions

    def get_study_session(self, subject_id, session_id) -> StudySession:
        return _find(self.get_subject(subject_id).study_sessions, session_id, "Study session")

    async def add_study_session(self, subject_id, chapter_name: str, study_date: str) -> StudySession:
        subject = self.get_subject(subject_id)
        study_date = _validate_date(study_date)
        session = StudySession(
            id=self._next_id(),
            chapter_name=_require_name(chapter_name),
            study_date=study_date,
            revisions=schedule_initial_revisions(study_date),
        )
        subject.study_sessions.append(session)
        await self.save()
        return session

    async def edit_study_session(
        self, subject_id, session_id, chapter_name: str | None = None, study_date: str | None = None,
    ) -> StudySession:
        """Rename a session or move it to another day. Moving it restarts its schedule."""
        subject = self.get_subject(subject_id)
        session = _find(subject.study_sessions, session_id, "Study session")
        await self._backup_before("edit-study-session", target=session.chapter_name, subject=subject.name)
        if chapter_name is not None:
            session.chapter_name = _require_name(chapter_name)
        if study_date is not None and _validate_date(study_date) != session.study_date:
            session.study_date = _validate_date(study_date)
            session.revisions = schedule_initial_revisions(session.study_date)
            session.last_revision_completed = -1
        await self.save()
        return session

    async def delete_study_session(self, subject_id, session_id) -> None:
        subject = self.get_subject(subject_id)
        session = _find(subject.study_sessions, session_id, "Study session")
        await self._backup_before(
            "delete-study-session", target=session.chapter_name, date=session.study_date, subject=subject.name,
        )
        subject.study_sessions.remove(session)
        await self.save()

    # Revisions

    async def toggle_revision(self, subject_id, session_id, index: int) -> Revision:
        """Flip a revision's completion.

        ``last_revision_completed`` records the index toggled, in either
        direction. Completing the last revision in the list schedules the
        next maintenance revision.
        """
        subject = self.get_subject(subject_id)
        session = _find(subject.study_sessions, session_id, "Study session")
        if not 0 <= index < len(session.revisions):
            raise NotFound(f"Revision {index} not found in study session {session_id}")
        revision = session.revisions[index]
        if revision.completed:
            await self._backup_before(
                "reset-revision", target=session.chapter_name, cycle=revision.cycle, subject=subject.name,
            )

        revision.completed = not revision.completed
        session.last_revision_completed = index
        if revision.completed and index == len(session.revisions) - 1:
            session.revisions.append(extend_with_maintenance(session.revisions, revision.date))
        await self.save()
        return revision

    async def dismiss_revision(self, session_id, index: int) -> None:
        self.dismissed_revisions.add(revision_key(session_id, index))
        await self.save()

    async def dismiss_overdue(self, as_of: str | None = None) -> int:
        """Dismiss every overdue notice currently showing. Returns how many."""
        overdue = self.overdue_revisions(as_of)
        if not overdue:
            return 0
        await self._backup_before("dismiss-overdue")
        self.dismissed_revisions.update(item["key"] for item in overdue)
        await self.save()
        return len(overdue)

    def _revision_entries(self):
        for subject in self.subjects:
            for session in subject.study_sessions:
                for index, revision in enumerate(session.revisions):
                    yield {
                        "subject": subject,
                        "session": session,
                        "index": index,
                        "revision": revision,
                        "key": revision_key(session.id, index),
                    }

    def overdue_revisions(self, as_of: str | None = None) -> list[dict]:
        """Incomplete revisions dated before ``as_of`` whose notice was not dismissed, oldest first."""
        as_of = as_of or self.today()
        entries = [
            e for e in self._revision_entries()
            if is_overdue(e["revision"], as_of) and e["key"] not in self.dismissed_revisions
        ]
        return sorted(entries, key=lambda e: e["revision"].date)

    def revisions_due_on(self, day: str | None = None) -> list[dict]:
        """Every revision scheduled for ``day``; several per date are all listed."""
        day = day or self.today()
        return [e for e in self._revision_entries() if is_due_today(e["revision"], day)]
