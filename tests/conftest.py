from datetime import datetime, timedelta, timezone

import pytest

from study_tracker.backup import BackupService
from study_tracker.db import DocumentStore, init_db
from study_tracker.errors import TransientStoreError
from study_tracker.tracker import StudySessionStore


class FakeClock:
    """Callable clock that moves forward by ``step`` every time it is read."""

    def __init__(self, start: datetime, step: timedelta = timedelta(seconds=1)):
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current += self.step
        return value


class FlakyBackupStore(DocumentStore):
    """Document store whose backup writes fail while ``fail_backups`` is set."""

    fail_backups = False

    async def set(self, path, value, merge=False):
        if self.fail_backups and "/backups/" in path:
            raise TransientStoreError("backups unavailable")
        await super().set(path, value, merge)


@pytest.fixture
def tmp_db(tmp_path):
    """Provide a temporary SQLite database path for tests."""
    db_path = str(tmp_path / "test_tracker.db")
    return db_path


@pytest.fixture
def make_clock():
    return FakeClock


@pytest.fixture
def clock(make_clock):
    # 11:30 in the reference timezone on 2025-09-23
    return make_clock(datetime(2025, 9, 23, 6, 0, tzinfo=timezone.utc))


@pytest.fixture
def store(tmp_db):
    init_db(tmp_db)
    return DocumentStore(tmp_db)


@pytest.fixture
def flaky_store(tmp_db):
    init_db(tmp_db)
    return FlakyBackupStore(tmp_db)


@pytest.fixture
def service(store, clock):
    return BackupService(store, now=clock)


@pytest.fixture
def tracker(store, service, clock):
    return StudySessionStore(store, service, now=clock)


@pytest.fixture
def subjects_data() -> list[dict]:
    return [
        {
            "id": 1,
            "name": "Chemistry",
            "chapters": [
                {"id": 11, "name": "Atomic Structure", "topicalsCompleted": True},
                {"id": 12, "name": "Bonding", "topicalsCompleted": False},
            ],
            "pastPapers": [
                {"id": 21, "session": "MJ", "year": 2023, "paperNumber": 1, "score": 72, "hardChapters": "Bonding"},
            ],
            "studySessions": [
                {
                    "id": 31,
                    "chapterName": "Atomic Structure",
                    "studyDate": "2025-08-06",
                    "revisions": [
                        {"id": "rev-0", "date": "2025-08-09", "cycle": "Day 3", "completed": True},
                        {"id": "rev-1", "date": "2025-08-13", "cycle": "Day 7", "completed": False},
                    ],
                    "lastRevisionCompleted": 0,
                },
            ],
        },
        {"id": 2, "name": "Physics", "chapters": [], "pastPapers": [], "studySessions": []},
    ]
