import typer
from rich.console import Console
from rich.table import Table
from typing import Optional
from datetime import datetime, date
import json
import sys

from spaced_review.config import settings
from spaced_review.database import SessionLocal, init_db
from spaced_review.crud import (
    create_student, get_student,
    record_review, schedule_initial_review, reset_review,
    get_concepts_due_for_review, get_review_statistics, get_upcoming_reviews,
    get_review_schedule, update_daily_streak, get_streak_info,
    archive_mastered_reviews, start_review_session, review_in_session, complete_review_session
)
from spaced_review.api import schedule as schedule_payload, handle_review_command
from spaced_review.errors import SpacedReviewError, ValidationError
from spaced_review.importer import ConceptSheetParser, import_concepts
from spaced_review.logging_config import configure_logging
from spaced_review.schemas import StudentCreate

app = typer.Typer(help="Spaced Review CLI - SM-2 review scheduling for K-12 learners")
console = Console()


def fail(error: Exception):
    """Print an error the CLI way and exit non-zero"""
    console.print(f"[red]✗[/red] {error}")
    if isinstance(error, ValidationError):
        for detail in error.errors:
            console.print(f"  [dim]{detail}[/dim]")
    raise typer.Exit(code=1)


def parse_day(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise typer.BadParameter(f"{value!r} is not a YYYY-MM-DD date")


@app.callback()
def main(log_level: str = typer.Option(settings.log_level, help="Logging level")):
    """Configure logging before any command runs"""
    configure_logging(log_level)


@app.command()
def init():
    """Initialize database tables"""
    init_db()
    console.print("[green]✓[/green] Database initialized successfully!")


@app.command()
def reset_db():
    """Delete all data and reinitialize database (WARNING: irreversible!)"""
    confirm = typer.confirm("⚠️  This will DELETE ALL DATA. Are you sure?")
    if not confirm:
        console.print("[yellow]Cancelled.[/yellow]")
        return

    from spaced_review.database import engine, Base
    console.print("[yellow]Dropping all tables...[/yellow]")
    Base.metadata.drop_all(bind=engine)
    console.print("[yellow]Recreating tables...[/yellow]")
    init_db()
    console.print("[green]✓[/green] Database reset complete! All data deleted.")


@app.command("create-student")
def add_student(
    name: str = typer.Option(..., prompt="Student's name"),
    grade: str = typer.Option(..., prompt="Grade (K, 1-12)")
):
    """Create a new student"""
    db = SessionLocal()
    try:
        student = create_student(db, StudentCreate(name=name, grade=grade))
        console.print(f"[green]✓[/green] Student created successfully! Student ID: {student.id}")
        console.print(f"  Name: {student.name}")
        console.print(f"  Grade: {student.grade}")
    finally:
        db.close()


@app.command()
def view_student(student_id: int):
    """View student profile"""
    db = SessionLocal()
    try:
        student = get_student(db, student_id)
        if not student:
            console.print(f"[red]✗[/red] Student ID {student_id} not found")
            raise typer.Exit(code=1)

        console.print("\n[bold]Student Profile[/bold]")
        console.print(f"  ID: {student.id}")
        console.print(f"  Name: {student.name}")
        console.print(f"  Grade: {student.grade}")
        console.print(f"  Concepts tracked: {len(student.concept_reviews)}")
    finally:
        db.close()


@app.command()
def schedule(
    quality: Optional[int] = typer.Option(None, help="Recall quality 0-5"),
    repetitions: int = typer.Option(0, help="Prior consecutive successful reviews"),
    ease: float = typer.Option(settings.initial_ease_factor, help="Prior ease factor"),
    interval: int = typer.Option(0, help="Prior interval in days"),
    body: Optional[str] = typer.Option(None, "--json", help="JSON request body, '-' reads stdin")
):
    """Compute the next review from a prior state without touching the database"""
    if body == "-":
        body = sys.stdin.read()
    if body is None:
        if quality is None:
            raise typer.BadParameter("--quality is required without --json")
        body = {
            "quality": quality,
            "priorState": {"repetitions": repetitions, "easeFactor": ease, "intervalDays": interval}
        }

    try:
        result = schedule_payload(body, params=settings.scheduler_params())
    except SpacedReviewError as e:
        fail(e)
    typer.echo(json.dumps(result))


@app.command()
def review(
    student_id: Optional[int] = typer.Option(None, help="Student ID"),
    concept: Optional[str] = typer.Option(None, help="Concept ID"),
    quality: Optional[int] = typer.Option(None, help="Recall quality 0-5"),
    subject: Optional[str] = typer.Option(None, help="Subject ID"),
    session: Optional[str] = typer.Option(None, help="Study session ID"),
    body: Optional[str] = typer.Option(None, "--json", help="JSON review command, '-' reads stdin")
):
    """Record a review (or a tagged JSON review command) and show the next review"""
    db = SessionLocal()
    try:
        if body is not None:
            if body == "-":
                body = sys.stdin.read()
            typer.echo(json.dumps(handle_review_command(db, body)))
            return

        if student_id is None or concept is None or quality is None:
            raise typer.BadParameter("--student-id, --concept and --quality are required without --json")

        result = record_review(db, student_id, concept, quality, subject_id=subject, session_id=session)
        record = result.review
        console.print("[green]✓[/green] Review recorded!")
        console.print(f"  Concept: {record.concept_id}")
        console.print(f"  Quality: {quality}/5")
        console.print(f"  Next review: {record.next_review_at:%Y-%m-%d %H:%M} (in {record.interval_days} days)")
        console.print(f"  Ease factor: {record.ease_factor:.2f}")
        console.print(f"  Mastery: {result.mastery}%")
    except SpacedReviewError as e:
        fail(e)
    finally:
        db.close()


@app.command()
def schedule_initial(
    student_id: int = typer.Option(..., prompt="Student ID"),
    concept: str = typer.Option(..., prompt="Concept ID"),
    subject: Optional[str] = typer.Option(None, help="Subject ID"),
    quality: int = typer.Option(3, help="Quality of the first attempt 0-5")
):
    """Start tracking a newly learned concept"""
    db = SessionLocal()
    try:
        record = schedule_initial_review(db, student_id, concept, subject_id=subject, initial_quality=quality)
        console.print(f"[green]✓[/green] Tracking {record.concept_id}")
        console.print(f"  First review: {record.next_review_at:%Y-%m-%d}")
    except SpacedReviewError as e:
        fail(e)
    finally:
        db.close()


@app.command()
def due(
    student_id: int,
    subject: Optional[str] = typer.Option(None, help="Only this subject")
):
    """List concepts due for review"""
    db = SessionLocal()
    try:
        due_concepts = get_concepts_due_for_review(db, student_id, subject_id=subject)
        if not due_concepts:
            console.print(f"[green]Nothing due for student {student_id}[/green]")
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Concept", style="green")
        table.add_column("Subject", style="cyan")
        table.add_column("Due", style="yellow")
        table.add_column("Days Overdue", style="red", justify="right")
        table.add_column("Ease", style="blue", justify="right")

        limit = settings.due_list_limit
        for item in due_concepts[:limit]:
            table.add_row(
                item.concept_id,
                item.subject_id or "-",
                item.next_review_at.strftime("%Y-%m-%d"),
                str(item.days_overdue) if item.days_overdue > 0 else "Today",
                f"{item.ease_factor:.2f}"
            )

        console.print(table)
        if len(due_concepts) > limit:
            console.print(f"[dim]... and {len(due_concepts) - limit} more concepts[/dim]")
    finally:
        db.close()


@app.command()
def show_concept(student_id: int, concept: str):
    """Show where one concept stands in its review cycle"""
    db = SessionLocal()
    try:
        view = get_review_schedule(db, student_id, concept)
        if view.is_new:
            console.print(f"[yellow]{concept} has never been reviewed - review it now[/yellow]")
            return
        console.print(f"\n[bold]{concept}[/bold]")
        console.print(f"  Next review: {view.next_review_at:%Y-%m-%d} ({'due' if view.is_due else f'in {view.days_until_review} days'})")
        console.print(f"  Interval: {view.interval_days} days, repetitions: {view.repetitions}")
        console.print(f"  Ease factor: {view.ease_factor:.2f}")
        console.print(f"  Mastery: {view.mastery}% over {view.total_reviews} reviews")
    finally:
        db.close()


@app.command()
def stats(student_id: int):
    """View review statistics"""
    db = SessionLocal()
    try:
        statistics = get_review_statistics(db, student_id)
        console.print(f"\n[bold]Review Statistics - student {student_id}[/bold]\n")
        console.print(f"  Concepts tracked: {statistics.total_concepts}")
        console.print(f"  Due for review: {statistics.due_for_review}")
        console.print(f"  Due in the next 7 days: {statistics.upcoming_reviews}")
        console.print(f"  Average mastery: {statistics.average_mastery}%")
        console.print(f"  Total reviews: {statistics.total_reviews}")
        bands = statistics.concepts_by_mastery
        console.print(f"  Mastered / learning / new: {bands.mastered} / {bands.learning} / {bands.new}")
    finally:
        db.close()


@app.command()
def upcoming(student_id: int, days: int = typer.Option(14, help="Days to look ahead")):
    """Show how many reviews fall on each upcoming day"""
    db = SessionLocal()
    try:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Date", style="cyan")
        table.add_column("Reviews", style="blue", justify="right")
        table.add_column("Concepts", style="green")

        for day in get_upcoming_reviews(db, student_id, days=days):
            if day.count:
                table.add_row(str(day.day), str(day.count), ", ".join(day.concept_ids[:5]))

        console.print(table)
    finally:
        db.close()


@app.command()
def reset_concept(student_id: int, concept: str):
    """Restart a concept from scratch (due immediately)"""
    db = SessionLocal()
    try:
        reset_review(db, student_id, concept)
        console.print(f"[green]✓[/green] {concept} reset, due now")
    except SpacedReviewError as e:
        fail(e)
    finally:
        db.close()


@app.command()
def review_session(
    student_id: int = typer.Option(..., prompt="Student ID"),
    subject: Optional[str] = typer.Option(None, help="Only this subject"),
    limit: Optional[int] = typer.Option(None, help="Max concepts (default: due list limit)")
):
    """Work through due concepts one by one, then show a session summary"""
    db = SessionLocal()
    try:
        session = start_review_session(db, student_id, subject_id=subject, limit=limit)
        total = session.total_concepts
        if total == 0:
            console.print(f"[green]Nothing due for student {student_id}[/green]")
        else:
            console.print(f"[bold]Review session[/bold] - {total} concepts\n")

        for number, concept_id in enumerate(session.concept_ids, start=1):
            while True:
                quality = typer.prompt(f"[{number}/{total}] {concept_id} - recall quality 0-5", type=int)
                try:
                    result = review_in_session(db, session.session_id, concept_id, quality)
                    break
                except ValidationError as e:
                    console.print(f"[red]✗[/red] {e}")
            console.print(f"  Next review in {result.review.interval_days} days (mastery {result.mastery}%)")

        summary = complete_review_session(db, session.session_id)
        if summary.reviews:
            console.print(f"\n[green]✓[/green] Session complete: {summary.reviews} reviews")
            console.print(f"  Accuracy: {summary.accuracy:.0f}%")
            console.print(f"  Average quality: {summary.average_quality:.1f}/5")
            console.print(f"  Duration: {summary.duration_minutes:.1f} minutes")

        upcoming_info = summary.next_session
        if upcoming_info.next_review_at:
            console.print(f"  Next review: {upcoming_info.next_review_at:%Y-%m-%d} ({upcoming_info.upcoming_week} due this week)")
    except SpacedReviewError as e:
        fail(e)
    finally:
        db.close()


@app.command()
def archive_mastered(
    student_id: int,
    days: int = typer.Option(180, help="Archive mastered concepts untouched for this many days")
):
    """Take long-mastered concepts out of the review queue"""
    db = SessionLocal()
    try:
        archived = archive_mastered_reviews(db, student_id, days_old=days)
        console.print(f"[green]✓[/green] Archived {archived} mastered concepts")
    finally:
        db.close()


@app.command()
def log_study(
    student_id: int = typer.Option(..., prompt="Student ID"),
    minutes: int = typer.Option(..., prompt="Minutes studied today"),
    day: Optional[str] = typer.Option(None, help="Date (YYYY-MM-DD), default: today")
):
    """Log study minutes and update the daily streak"""
    db = SessionLocal()
    try:
        update = update_daily_streak(db, student_id, minutes, today=parse_day(day))
        console.print(f"[green]✓[/green] Current streak: {update.current_streak} days")
        milestone = update.milestone
        if milestone and not milestone.is_approaching:
            console.print(f"  🔥 Milestone reached: {milestone.name}")
        elif milestone:
            console.print(f"  Next milestone: {milestone.name} in {milestone.days_remaining} days")
    except SpacedReviewError as e:
        fail(e)
    finally:
        db.close()


@app.command()
def streak(student_id: int):
    """View the current study streak"""
    db = SessionLocal()
    try:
        info = get_streak_info(db, student_id)
        console.print(f"\n[bold]Study Streak - student {student_id}[/bold]")
        console.print(f"  Current streak: {info.current_streak} days")
        console.print(f"  Longest streak: {info.longest_streak} days")
        if info.streak_at_risk:
            console.print("  [yellow]Study today to keep your streak![/yellow]")
        if info.today_minutes:
            console.print(f"  Minutes today: {info.today_minutes}")
    finally:
        db.close()


@app.command("import-concepts")
def import_concept_sheet(
    student_id: int = typer.Option(..., prompt="Student ID"),
    file_path: str = typer.Option(..., prompt="Concept sheet path (.csv or .xlsx)")
):
    """Schedule first reviews for every concept in a CSV or Excel sheet"""
    db = SessionLocal()
    try:
        console.print("[yellow]Parsing concept sheet...[/yellow]")
        rows = ConceptSheetParser.auto_parse(file_path)
        console.print(f"[green]✓[/green] Extracted {len(rows)} concept rows")

        scheduled = import_concepts(db, student_id, rows)
        console.print(f"[green]✓[/green] Scheduled {len(scheduled)} concepts for review")
    except (SpacedReviewError, ValueError, OSError) as e:
        fail(e)
    finally:
        db.close()


if __name__ == "__main__":
    app()
