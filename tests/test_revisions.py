from study_tracker.models import Revision
from study_tracker.revisions import (
    MAINTENANCE_CYCLE, add_days, extend_with_maintenance, is_due_today, is_overdue,
    revision_key, schedule_initial_revisions,
)


def test_add_days_crosses_month_and_year():
    assert add_days("2025-01-30", 3) == "2025-02-02"
    assert add_days("2024-12-31", 1) == "2025-01-01"
    assert add_days("2024-02-28", 1) == "2024-02-29"


def test_schedule_initial_revisions():
    revisions = schedule_initial_revisions("2025-01-01")
    assert [r.date for r in revisions] == ["2025-01-04", "2025-01-08", "2025-01-15", "2025-01-31"]
    assert [r.cycle for r in revisions] == ["Day 3", "Day 7", "Day 14", "Day 30"]
    assert [r.id for r in revisions] == ["rev-0", "rev-1", "rev-2", "rev-3"]
    assert not any(r.completed for r in revisions)


def test_extend_with_maintenance_follows_anchor():
    revisions = schedule_initial_revisions("2025-01-01")
    maintenance = extend_with_maintenance(revisions, revisions[-1].date)
    assert maintenance.id == "rev-4"
    assert maintenance.date == "2025-03-02"
    assert maintenance.cycle == MAINTENANCE_CYCLE
    assert maintenance.completed is False


def test_extend_with_maintenance_does_not_modify_list():
    revisions = schedule_initial_revisions("2025-01-01")
    extend_with_maintenance(revisions, revisions[-1].date)
    assert len(revisions) == 4


def test_is_overdue():
    r = Revision(id="rev-0", date="2025-01-04", cycle="Day 3")
    assert is_overdue(r, "2025-01-05")
    assert not is_overdue(r, "2025-01-04")
    assert not is_overdue(r, "2025-01-03")
    r.completed = True
    assert not is_overdue(r, "2025-01-05")


def test_is_due_today_ignores_completion():
    r = Revision(id="rev-0", date="2025-01-04", cycle="Day 3", completed=True)
    assert is_due_today(r, "2025-01-04")
    assert not is_due_today(r, "2025-01-05")


def test_revision_key():
    assert revision_key(1700000000000, 2) == "1700000000000-2"
