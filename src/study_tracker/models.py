"""Data classes for the study tracker domain model.

``to_dict`` produces the camelCase shape stored in the dataset document and
in backups; ``from_dict`` accepts documents written by older versions that
lack newer keys.
"""
from dataclasses import dataclass, field
from typing import Any

PAPER_SESSIONS = ("MJ", "ON", "JN")
BACKUP_TYPES = ("daily", "safety", "change", "manual", "auto")


@dataclass
class Revision:
    id: str
    date: str
    cycle: str
    completed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "date": self.date, "cycle": self.cycle, "completed": self.completed}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Revision":
        return cls(
            id=data["id"],
            date=data["date"],
            cycle=data.get("cycle", ""),
            completed=bool(data.get("completed", False)),
        )


@dataclass
class StudySession:
    id: int
    chapter_name: str  # Copied, not linked: survives chapter renames and deletion
    study_date: str
    revisions: list[Revision] = field(default_factory=list)
    last_revision_completed: int = -1

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "chapterName": self.chapter_name,
            "studyDate": self.study_date,
            "revisions": [r.to_dict() for r in self.revisions],
            "lastRevisionCompleted": self.last_revision_completed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StudySession":
        return cls(
            id=data["id"],
            chapter_name=data.get("chapterName", ""),
            study_date=data["studyDate"],
            revisions=[Revision.from_dict(r) for r in data.get("revisions", [])],
            last_revision_completed=data.get("lastRevisionCompleted", -1),
        )


@dataclass
class Chapter:
    id: int
    name: str
    topicals_completed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "topicalsCompleted": self.topicals_completed}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Chapter":
        return cls(
            id=data["id"],
            name=data["name"],
            topicals_completed=bool(data.get("topicalsCompleted", False)),
        )


@dataclass
class PastPaper:
    id: int
    session: str
    year: int
    paper_number: int | str
    score: float
    hard_chapters: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "session": self.session,
            "year": self.year,
            "paperNumber": self.paper_number,
            "score": self.score,
            "hardChapters": self.hard_chapters,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PastPaper":
        return cls(
            id=data["id"],
            session=data["session"],
            year=int(data["year"]),
            paper_number=data["paperNumber"],
            # Early versions stored the score as the raw form string
            score=float(data["score"]),
            hard_chapters=data.get("hardChapters", ""),
        )


@dataclass
class Subject:
    id: int
    name: str
    chapters: list[Chapter] = field(default_factory=list)
    past_papers: list[PastPaper] = field(default_factory=list)
    study_sessions: list[StudySession] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "chapters": [c.to_dict() for c in self.chapters],
            "pastPapers": [p.to_dict() for p in self.past_papers],
            "studySessions": [s.to_dict() for s in self.study_sessions],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Subject":
        return cls(
            id=data["id"],
            name=data["name"],
            chapters=[Chapter.from_dict(c) for c in data.get("chapters", [])],
            past_papers=[PastPaper.from_dict(p) for p in data.get("pastPapers", [])],
            study_sessions=[StudySession.from_dict(s) for s in data.get("studySessions", [])],
        )
