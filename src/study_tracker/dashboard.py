"""Subject progress and past paper statistics."""
from study_tracker.models import Subject

# (minimum score, label, colour), highest band first
PROGRESS_BANDS = (
    (80, "STRONG", "green"),
    (65, "ON TRACK", "yellow"),
    (50, "NEEDS WORK", "dark_orange"),
    (0, "WEAK", "red"),
)


def _band(score: float) -> tuple:
    for band in PROGRESS_BANDS:
        if score >= band[0]:
            return band
    return PROGRESS_BANDS[-1]


def get_progress_label(score: float) -> str:
    return _band(score)[1]


def get_progress_color(score: float) -> str:
    return _band(score)[2]


def get_subject_progress(subject: Subject) -> int:
    """Percentage of chapters with topicals completed."""
    if not subject.chapters:
        return 0
    completed = sum(1 for c in subject.chapters if c.topicals_completed)
    return round(completed / len(subject.chapters) * 100)


def get_average_score(subject: Subject) -> int:
    if not subject.past_papers:
        return 0
    total = sum(p.score for p in subject.past_papers)
    return round(total / len(subject.past_papers))


def get_revision_stats(subject: Subject) -> dict:
    revisions = [r for s in subject.study_sessions for r in s.revisions]
    completed = sum(1 for r in revisions if r.completed)
    return {
        "sessions": len(subject.study_sessions),
        "revisions": len(revisions),
        "completed": completed,
        "maintenance": sum(1 for r in revisions if r.cycle.startswith("Maintenance")),
    }


def get_subject_summaries(subjects: list[Subject]) -> list[dict]:
    results = []
    for subject in subjects:
        progress = get_subject_progress(subject)
        results.append({
            "subject_id": subject.id,
            "name": subject.name,
            "chapters": len(subject.chapters),
            "papers": len(subject.past_papers),
            "progress": progress,
            "average_score": get_average_score(subject),
            "label": get_progress_label(progress),
            **get_revision_stats(subject),
        })
    return results
