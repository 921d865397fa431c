"""Interactive CLI application."""
import asyncio
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table

from study_tracker.backup import BackupService
from study_tracker.config import BACKUP_KEEP_COUNT, DB_PATH
from study_tracker.dashboard import get_progress_color, get_subject_summaries
from study_tracker.db import DocumentStore, init_db
from study_tracker.errors import StudyTrackerError
from study_tracker.logging_config import init_logging
from study_tracker.tracker import StudySessionStore

console = Console()

BACKUP_TYPE_COLORS = {
    "daily": "blue",
    "safety": "yellow",
    "change": "magenta",
    "manual": "green",
    "auto": "cyan",
}


def show_welcome():
    console.print(Panel(
        "[bold]Study Tracker[/bold]\n[dim]Chapters, past papers and spaced revision[/dim]",
        title="Welcome", border_style="blue",
    ))


def show_menu():
    console.print("\n[bold]Commands:[/bold]")
    commands = [
        ("subjects", "Subject progress"),
        ("add", "Add a subject"),
        ("study", "Log a study session"),
        ("today", "Revisions due today"),
        ("overdue", "Overdue revisions"),
        ("complete", "Toggle a revision"),
        ("dismiss", "Dismiss all overdue notices"),
        ("backups", "Backup history"),
        ("backup", "Create a manual backup"),
        ("restore", "Restore a backup"),
        ("export", "Export a backup to JSON"),
        ("import", "Import a backup JSON file"),
        ("cleanup", f"Keep only the {BACKUP_KEEP_COUNT} newest backups"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<14}[/cyan] {desc}")


def pick_subject(tracker: StudySessionStore):
    if not tracker.subjects:
        console.print("[yellow]No subjects yet. Use 'add' first.[/yellow]")
        return None
    for i, subject in enumerate(tracker.subjects, 1):
        console.print(f"  [cyan]{i}[/cyan]) {subject.name}")
    choice = IntPrompt.ask("Select subject", choices=[str(i) for i in range(1, len(tracker.subjects) + 1)])
    return tracker.subjects[choice - 1]


def render_subjects_table(tracker: StudySessionStore) -> Table:
    table = Table(title="Subjects")
    table.add_column("Subject", style="cyan")
    table.add_column("Chapters", justify="right")
    table.add_column("Progress", justify="right")
    table.add_column("Papers", justify="right")
    table.add_column("Avg Score", justify="right")
    table.add_column("Revisions", justify="right")
    for s in get_subject_summaries(tracker.subjects):
        color = get_progress_color(s["progress"])
        table.add_row(
            s["name"],
            str(s["chapters"]),
            f"[{color}]{s['progress']}%[/{color}]",
            str(s["papers"]),
            f"{s['average_score']}%",
            f"{s['completed']}/{s['revisions']}",
        )
    return table


def render_revisions_table(title: str, entries: list[dict]) -> Table:
    table = Table(title=title)
    table.add_column("#", justify="right")
    table.add_column("Date")
    table.add_column("Subject", style="cyan")
    table.add_column("Chapter")
    table.add_column("Cycle")
    table.add_column("Done")
    for i, e in enumerate(entries, 1):
        table.add_row(
            str(i),
            e["revision"].date,
            e["subject"].name,
            e["session"].chapter_name,
            e["revision"].cycle,
            "[green]yes[/green]" if e["revision"].completed else "",
        )
    return table


def render_backups_table(backups: list[dict]) -> Table:
    table = Table(title="Backup History")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Created")
    table.add_column("Subjects", justify="right")
    table.add_column("Sessions", justify="right")
    for b in backups:
        color = BACKUP_TYPE_COLORS.get(b.get("backupType"), "white")
        meta = b.get("metadata") or {}
        table.add_row(
            b["id"],
            b.get("name", ""),
            f"[{color}]{b.get('backupType', '')}[/{color}]",
            b.get("timestamp", ""),
            str(meta.get("subjectCount", 0)),
            str(meta.get("totalStudySessions", 0)),
        )
    return table


async def cmd_subjects(tracker: StudySessionStore):
    if not tracker.subjects:
        console.print("[yellow]No subjects yet.[/yellow]")
        return
    console.print(render_subjects_table(tracker))


async def cmd_add(tracker: StudySessionStore):
    name = Prompt.ask("Subject name")
    subject = await tracker.add_subject(name)
    console.print(f"[green]Added {subject.name}[/green]")


async def cmd_study(tracker: StudySessionStore):
    subject = pick_subject(tracker)
    if subject is None:
        return
    chapter = Prompt.ask("Chapter studied")
    study_date = Prompt.ask("Study date (YYYY-MM-DD)", default=tracker.today())
    session = await tracker.add_study_session(subject.id, chapter, study_date)
    console.print(render_revisions_table(
        f"Revisions for {session.chapter_name}",
        [{"subject": subject, "session": session, "revision": r} for r in session.revisions],
    ))


async def cmd_today(tracker: StudySessionStore):
    entries = tracker.revisions_due_on()
    if not entries:
        console.print("[green]Nothing due today.[/green]")
        return
    console.print(render_revisions_table(f"Due {tracker.today()}", entries))


async def cmd_overdue(tracker: StudySessionStore):
    entries = tracker.overdue_revisions()
    if not entries:
        console.print("[green]No overdue revisions.[/green]")
        return
    console.print(render_revisions_table("Overdue", entries))


async def cmd_complete(tracker: StudySessionStore):
    entries = tracker.overdue_revisions() + tracker.revisions_due_on()
    if not entries:
        console.print("[green]Nothing to complete.[/green]")
        return
    console.print(render_revisions_table("Pending", entries))
    choice = IntPrompt.ask("Revision", choices=[str(i) for i in range(1, len(entries) + 1)])
    e = entries[choice - 1]
    before = len(e["session"].revisions)
    revision = await tracker.toggle_revision(e["subject"].id, e["session"].id, e["index"])
    state = "completed" if revision.completed else "reset"
    console.print(f"[green]{e['session'].chapter_name} {revision.cycle} {state}.[/green]")
    if len(e["session"].revisions) > before:
        nxt = e["session"].revisions[-1]
        console.print(f"[cyan]Next maintenance revision on {nxt.date}[/cyan]")


async def cmd_dismiss(tracker: StudySessionStore):
    count = await tracker.dismiss_overdue()
    console.print(f"[green]Dismissed {count} overdue notices.[/green]")


async def cmd_backups(tracker: StudySessionStore):
    backups = await tracker.backups.get_backup_history()
    if not backups:
        console.print("[yellow]No backups yet.[/yellow]")
        return
    console.print(render_backups_table(backups))


async def cmd_backup(tracker: StudySessionStore):
    description = Prompt.ask("Description", default="")
    backup_id = await tracker.backups.create_backup(
        tracker.to_user_data(), {"type": "manual", "description": description or None},
    )
    console.print(f"[green]Backup created: {backup_id}[/green]")


async def cmd_restore(tracker: StudySessionStore):
    backup_id = Prompt.ask("Backup ID")
    if not Confirm.ask(f"Replace all current data with {backup_id}?", default=False):
        return
    await tracker.restore(backup_id)
    console.print("[green]Restored. A safety backup of the previous data was saved first.[/green]")


async def cmd_export(tracker: StudySessionStore):
    backup_id = Prompt.ask("Backup ID")
    text = await tracker.backups.export_backup_as_json(backup_id)
    out = Path(Prompt.ask("Output file", default=f"{backup_id}.json"))
    out.write_text(text)
    console.print(f"[green]Exported to {out}[/green]")


async def cmd_import(tracker: StudySessionStore):
    file_path = Prompt.ask("File path")
    if not Path(file_path).exists():
        console.print(f"[red]File not found: {file_path}[/red]")
        return
    if not Confirm.ask("Replace all current data with this file?", default=False):
        return
    await tracker.import_json(Path(file_path).read_text())
    console.print("[green]Imported. A safety backup of the previous data was saved first.[/green]")


async def cmd_cleanup(tracker: StudySessionStore):
    deleted = await tracker.backups.cleanup_old_backups(BACKUP_KEEP_COUNT)
    console.print(f"[green]Deleted {deleted} old backups.[/green]")


COMMANDS = {
    "subjects": cmd_subjects,
    "add": cmd_add,
    "study": cmd_study,
    "today": cmd_today,
    "overdue": cmd_overdue,
    "complete": cmd_complete,
    "dismiss": cmd_dismiss,
    "backups": cmd_backups,
    "backup": cmd_backup,
    "restore": cmd_restore,
    "export": cmd_export,
    "import": cmd_import,
    "cleanup": cmd_cleanup,
}


def build_tracker(db_path: str = DB_PATH) -> StudySessionStore:
    init_db(db_path)
    store = DocumentStore(db_path)
    return StudySessionStore(store, BackupService(store))


def main():
    init_logging()
    tracker = build_tracker()
    asyncio.run(tracker.load())
    show_welcome()

    while True:
        show_menu()
        choice = Prompt.ask("\n[bold]>[/bold]", default="today").strip().lower()
        if choice in ("quit", "exit", "q"):
            console.print("[dim]Keep revising![/dim]")
            break
        handler = COMMANDS.get(choice)
        if handler is None:
            console.print("[red]Unknown command. Try again.[/red]")
            continue
        try:
            asyncio.run(handler(tracker))
        except KeyboardInterrupt:
            console.print("\n[dim]Use 'quit' to exit.[/dim]")
        except (StudyTrackerError, ValueError) as e:
            console.print(f"[red]Error: {e}[/red]")


if __name__ == "__main__":
    main()
