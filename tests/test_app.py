import pytest
from unittest.mock import patch

from study_tracker.app import (
    cmd_add, cmd_backup, cmd_cleanup, cmd_export, cmd_import, cmd_restore, cmd_study,
    render_backups_table, render_revisions_table, render_subjects_table,
)


@pytest.mark.asyncio
async def test_render_subjects_table(tracker):
    await tracker.add_subject("Physics")
    await tracker.add_subject("Chemistry")
    table = render_subjects_table(tracker)
    assert table.row_count == 2


@pytest.mark.asyncio
async def test_render_revisions_table(tracker):
    subject = await tracker.add_subject("Physics")
    await tracker.add_study_session(subject.id, "Waves", "2025-01-01")
    table = render_revisions_table("Overdue", tracker.overdue_revisions("2025-02-01"))
    assert table.row_count == 4


def test_render_backups_table_tolerates_missing_fields():
    table = render_backups_table([{"id": "backup_1"}, {"id": "backup_2", "backupType": "daily", "metadata": None}])
    assert table.row_count == 2


@pytest.mark.asyncio
async def test_cmd_add(tracker):
    with patch("study_tracker.app.Prompt.ask", return_value="Biology"):
        await cmd_add(tracker)
    assert [s.name for s in tracker.subjects] == ["Biology"]


@pytest.mark.asyncio
async def test_cmd_study_logs_session(tracker):
    await tracker.add_subject("Biology")
    with patch("study_tracker.app.IntPrompt.ask", return_value=1), \
            patch("study_tracker.app.Prompt.ask", side_effect=["Cells", "2025-03-01"]):
        await cmd_study(tracker)
    session = tracker.subjects[0].study_sessions[0]
    assert session.chapter_name == "Cells"
    assert session.revisions[0].date == "2025-03-04"


@pytest.mark.asyncio
async def test_cmd_backup_creates_manual_backup(tracker):
    with patch("study_tracker.app.Prompt.ask", return_value="before exams"):
        await cmd_backup(tracker)
    newest = (await tracker.backups.get_backup_history(limit=1))[0]
    assert newest["backupType"] == "manual"
    assert newest["name"].startswith("Manual backup: before_exams")


@pytest.mark.asyncio
async def test_cmd_restore_declined_changes_nothing(tracker):
    await tracker.add_subject("Biology")
    backup_id = await tracker.backups.create_backup(tracker.to_user_data(), {"type": "manual"})
    await tracker.add_subject("Physics")
    with patch("study_tracker.app.Prompt.ask", return_value=backup_id), \
            patch("study_tracker.app.Confirm.ask", return_value=False):
        await cmd_restore(tracker)
    assert len(tracker.subjects) == 2


@pytest.mark.asyncio
async def test_cmd_export_then_import(tracker, tmp_path):
    await tracker.add_subject("Biology")
    backup_id = await tracker.backups.create_backup(tracker.to_user_data(), {"type": "manual"})
    out = tmp_path / "export.json"
    with patch("study_tracker.app.Prompt.ask", side_effect=[backup_id, str(out)]):
        await cmd_export(tracker)
    assert out.exists()

    await tracker.add_subject("Physics")
    with patch("study_tracker.app.Prompt.ask", return_value=str(out)), \
            patch("study_tracker.app.Confirm.ask", return_value=True):
        await cmd_import(tracker)
    assert [s.name for s in tracker.subjects] == ["Biology"]


@pytest.mark.asyncio
async def test_cmd_cleanup(tracker):
    for _ in range(12):
        await tracker.backups.create_backup({"subjects": []})
    await cmd_cleanup(tracker)
    assert len(await tracker.backups.get_backup_history(limit=None)) == 10
