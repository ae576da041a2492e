"""
Command Line Interface for Student Achievements.
"""

import asyncio
from typing import Optional

import typer
import uvicorn
from pymongo.errors import PyMongoError
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from sqlalchemy.exc import IntegrityError

from ..achievements.errors import AchievementError
from ..achievements.identity import CurrentUser
from ..achievements.policy import parse_role
from ..achievements.reconciliation import ReconciliationService
from ..achievements.services import AchievementWorkflowService
from ..attachments.uploader import get_attachment_uploader
from ..config import get_settings
from ..db.base import get_session_local, init_database
from ..db.models import LecturerModel, StudentModel
from ..documents.base import get_document_repository
from ..logging_config import configure_logging

app = typer.Typer(help="Student Achievements - achievement reporting and verification")
console = Console()

STATUS_STYLE = {
    "draft": "🟡 Draft",
    "submitted": "🔵 Submitted",
    "verified": "✅ Verified",
    "rejected": "❌ Rejected",
    "deleted": "🗑️ Deleted",
}


@app.command()
def serve(
    port: Optional[int] = typer.Option(None, help="Port to run the API server on"),
    host: Optional[str] = typer.Option(None, help="Host to bind the server to"),
    dev: bool = typer.Option(False, help="Run in development mode (auto-reload)"),
):
    """Start the API server."""
    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port

    rprint(Panel.fit("🎓 Starting Student Achievements", style="bold blue"))
    console.print(f"🚀 Serving on http://{host}:{port}")
    uvicorn.run(
        "student_achievements.main:app",
        host=host,
        port=port,
        reload=dev,
        workers=1 if dev else settings.api_workers,
    )


@app.command("init-db")
def init_db():
    """Create relational tables and document store indexes."""
    configure_logging()
    asyncio.run(init_database())
    console.print("✅ Relational tables created")

    try:
        get_document_repository().ensure_indexes()
    except PyMongoError as e:
        console.print(f"❌ Document store indexes not created: {e}")
        raise typer.Exit(code=1)
    console.print("✅ Document store indexes created")


@app.command("seed-profile")
def seed_profile(
    kind: str = typer.Argument(..., help="Profile kind: student or lecturer"),
    user_id: str = typer.Argument(..., help="User id carried in access tokens"),
    number: str = typer.Argument(..., help="Student number (NIM) or lecturer number"),
    full_name: str = typer.Argument(..., help="Full name"),
    advisor: Optional[str] = typer.Option(
        None, help="Lecturer number of the student's advisor"
    ),
    program_study: Optional[str] = typer.Option(None, help="Study program (students)"),
    academic_year: Optional[str] = typer.Option(None, help="Academic year (students)"),
    department: Optional[str] = typer.Option(None, help="Department (lecturers)"),
):
    """Insert a student or lecturer profile for local use."""
    kind = kind.lower()
    if kind not in ("student", "lecturer"):
        console.print("❌ Invalid kind. Use: student or lecturer")
        raise typer.Exit(code=1)

    db = get_session_local()()
    try:
        if kind == "lecturer":
            profile = LecturerModel(
                user_id=user_id,
                lecturer_number=number,
                full_name=full_name,
                department=department,
            )
        else:
            advisor_id = None
            if advisor:
                lecturer = (
                    db.query(LecturerModel)
                    .filter(LecturerModel.lecturer_number == advisor)
                    .first()
                )
                if lecturer is None:
                    console.print(f"❌ No lecturer with number {advisor}")
                    raise typer.Exit(code=1)
                advisor_id = lecturer.id
            profile = StudentModel(
                user_id=user_id,
                student_number=number,
                full_name=full_name,
                program_study=program_study,
                academic_year=academic_year,
                advisor_id=advisor_id,
            )

        db.add(profile)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            console.print(f"❌ A {kind} with this user id or number already exists")
            raise typer.Exit(code=1)

        console.print(f"✅ Created {kind} {full_name} ({profile.id})")
    finally:
        db.close()


@app.command()
def reconcile(
    limit: int = typer.Option(100, help="Maximum number of entries to replay"),
):
    """Replay pending cross-store repairs."""
    configure_logging()
    db = get_session_local()()
    try:
        service = ReconciliationService(
            db, get_document_repository(), get_attachment_uploader()
        )
        report = service.replay(limit=limit)
    finally:
        db.close()

    if report.total == 0:
        console.print("Nothing to reconcile")
        return

    table = Table(title="Reconciliation", show_header=True, header_style="bold magenta")
    table.add_column("Outcome", style="cyan")
    table.add_column("Entries", style="green")
    table.add_row("✅ Resolved", str(len(report.resolved)))
    table.add_row("⏭️ Skipped", str(len(report.skipped)))
    table.add_row("❌ Failed", str(len(report.failed)))
    console.print(table)

    if report.failed:
        raise typer.Exit(code=1)


@app.command()
def show(
    achievement_id: str = typer.Argument(..., help="Achievement reference id"),
    user_id: str = typer.Option("cli", help="Acting user id"),
    role: str = typer.Option("Admin", help="Acting role (Mahasiswa, Dosen Wali, Admin)"),
):
    """Show an achievement as a table."""
    db = get_session_local()()
    try:
        user = CurrentUser(user_id=user_id, role=parse_role(role))
        service = AchievementWorkflowService(db, get_document_repository())
        detail = service.get_detail(achievement_id, user)
    except AchievementError as e:
        console.print(f"❌ {e.message}")
        raise typer.Exit(code=1)
    finally:
        db.close()

    table = Table(title=detail.title, show_header=True, header_style="bold cyan")
    table.add_column("Field", style="yellow")
    table.add_column("Value")

    table.add_row("ID", detail.id)
    table.add_row("Student", f"{detail.student.full_name} ({detail.student.student_number})")
    table.add_row("Type", detail.achievement_type)
    table.add_row("Status", STATUS_STYLE.get(detail.status, detail.status))
    table.add_row("Points", str(detail.points))
    table.add_row("Tags", ", ".join(detail.tags))
    table.add_row("Attachments", "\n".join(a.file_url for a in detail.attachments))
    if detail.rejection_note:
        table.add_row("Rejection note", detail.rejection_note)
    table.add_row("Created", detail.created_at.isoformat())

    console.print(table)


@app.command()
def version():
    """Show version information."""
    from .. import __version__
    rprint(Panel.fit(f"Student Achievements v{__version__}", style="bold green"))


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
