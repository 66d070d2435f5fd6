"""
TalentMatch Command Line Interface

Provides CLI commands for managing the candidate and job stores,
backfilling embeddings, running semantic matches in both directions and
maintaining the stored match lists.
"""

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="talentmatch",
    help="Semantic candidate matching CLI",
    add_completion=False,
)
console = Console()


@app.callback()
def main():
    """Configure logging before any command runs."""
    from talentmatch.utils.logger import setup_logging

    setup_logging()


def _require_connection() -> None:
    from talentmatch.data.database import get_database_manager

    db_manager = get_database_manager()
    if not db_manager.check_sync_connection():
        console.print("[red]Error: Could not connect to MongoDB. Run 'init-db' first.[/red]")
        raise typer.Exit(1)


@app.command()
def version():
    """Show application version."""
    from talentmatch import __app_name__, __version__

    console.print(f"[bold blue]{__app_name__}[/bold blue] version [green]{__version__}[/green]")


@app.command()
def info():
    """Show system information and configuration."""
    from talentmatch.utils.config import get_settings

    settings = get_settings()

    table = Table(title="TalentMatch Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Environment", settings.environment)
    table.add_row("Debug Mode", str(settings.debug))
    table.add_row("Database Host", settings.database.host if not settings.database.uri else "(uri)")
    table.add_row("Database Name", settings.database.name)
    table.add_row("Embedding Model", settings.ml.model_version)
    table.add_row("Embedding Dimension", str(settings.ml.embedding_dimension))
    table.add_row("ML Device", settings.ml.device)
    table.add_row("Search Backend", settings.matching.search_backend)
    table.add_row("Default Limit", str(settings.matching.default_limit))
    table.add_row("Stored Matches", str(settings.matching.max_stored_matches))
    table.add_row("Refresh Interval", f"{settings.matching.refresh_interval_seconds:g}s")
    table.add_row("Log Level", settings.logging.level)

    console.print(table)


@app.command()
def init_db():
    """Initialize the database with required collections and indexes."""
    from talentmatch.data.database import get_database_manager
    from talentmatch.ml.embeddings import AtlasVectorSearchIndex, get_candidate_index, get_job_index
    from talentmatch.utils.config import get_settings
    from talentmatch.utils.exceptions import TalentMatchError

    console.print("[yellow]Initializing database...[/yellow]")

    db_manager = get_database_manager()

    console.print("  Checking database connection...")
    if not db_manager.check_sync_connection():
        console.print("[red]Error: Could not connect to MongoDB.[/red]")
        console.print("[dim]Make sure MongoDB is running and connection settings are correct.[/dim]")
        raise typer.Exit(1)

    console.print("  [green]✓[/green] Connected to MongoDB")

    async def run():
        await db_manager.ensure_indexes()
        for index in (get_candidate_index(), get_job_index()):
            if isinstance(index, AtlasVectorSearchIndex):
                created = await index.ensure_search_index(get_settings().ml.embedding_dimension)
                state = "created" if created else "already present"
                console.print(
                    f"  [green]✓[/green] Atlas vector index '{index.index_name}' {state}"
                )

    try:
        console.print("  Creating indexes...")
        asyncio.run(run())
    except TalentMatchError as e:
        console.print(f"[red]Error initializing database: {e.message}[/red]")
        raise typer.Exit(1)
    finally:
        db_manager.close_all()

    console.print("  [green]✓[/green] Indexes created")
    console.print("\n[green]Database initialized successfully![/green]")


def _read_records(path: Path, schema: type, kind: str) -> tuple[list, list[tuple[int, str]]]:
    """Load a JSON list from ``path`` and validate each entry against ``schema``."""
    from pydantic import ValidationError

    if not path.is_file():
        console.print(f"[red]Error: File does not exist: {path}[/red]")
        raise typer.Exit(1)

    try:
        records = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        console.print(f"[red]Error: Invalid JSON in {path}: {e}[/red]")
        raise typer.Exit(1)

    if isinstance(records, dict):
        records = [records]

    valid = []
    errors: list[tuple[int, str]] = []
    for position, record in enumerate(records):
        try:
            valid.append(schema.model_validate(record))
        except ValidationError as e:
            errors.append((position, e.errors(include_url=False)[0]["msg"]))

    if not valid:
        console.print(f"[yellow]No valid {kind} records found.[/yellow]")
        raise typer.Exit(1 if errors else 0)
    return valid, errors


def _print_skipped(errors: list[tuple[int, str]]) -> None:
    if errors:
        console.print(f"[red]Skipped {len(errors)} invalid record(s):[/red]")
        for position, message in errors[:10]:
            console.print(f"  [dim]#{position}:[/dim] {message}")


@app.command()
def import_candidates(
    path: Path = typer.Argument(..., help="JSON file holding a list of candidate objects"),
):
    """Import candidate profiles from a JSON file."""
    from talentmatch.data.database import get_database_manager
    from talentmatch.data.models import CandidateCreate
    from talentmatch.data.repositories import get_candidate_repository
    from talentmatch.utils.exceptions import TalentMatchError

    valid, errors = _read_records(path, CandidateCreate, "candidate")

    _require_connection()
    candidate_repo = get_candidate_repository()

    async def run():
        return [await candidate_repo.create_from_schema_async(data) for data in valid]

    try:
        created = asyncio.run(run())
    except TalentMatchError as e:
        console.print(f"[red]Error importing candidates: {e.message}[/red]")
        raise typer.Exit(1)
    finally:
        get_database_manager().close_all()

    console.print(f"\n[green]Imported {len(created)} candidate(s)[/green]")
    _print_skipped(errors)
    console.print("[dim]Run 'embed-candidates' to make them searchable.[/dim]")


@app.command()
def import_jobs(
    path: Path = typer.Argument(..., help="JSON file holding a list of job posting objects"),
):
    """Import job postings from a JSON file."""
    from talentmatch.data.database import get_database_manager
    from talentmatch.data.models import JobCreate
    from talentmatch.data.repositories import get_job_repository
    from talentmatch.utils.exceptions import TalentMatchError

    valid, errors = _read_records(path, JobCreate, "job posting")

    _require_connection()
    job_repo = get_job_repository()

    async def run():
        return [await job_repo.create_from_schema_async(data) for data in valid]

    try:
        created = asyncio.run(run())
    except TalentMatchError as e:
        console.print(f"[red]Error importing job postings: {e.message}[/red]")
        raise typer.Exit(1)
    finally:
        get_database_manager().close_all()

    console.print(f"\n[green]Imported {len(created)} job posting(s)[/green]")
    _print_skipped(errors)
    console.print("[dim]Run 'refresh-job-matches --all' to build their shortlists.[/dim]")


@app.command()
def list_candidates(
    limit: int = typer.Option(20, "--limit", "-l", help="Maximum number of candidates to show"),
):
    """List candidates in the database."""
    from talentmatch.data.database import get_database_manager
    from talentmatch.data.repositories import get_candidate_repository
    from talentmatch.utils.config import get_settings
    from talentmatch.utils.exceptions import TalentMatchError

    _require_connection()
    candidate_repo = get_candidate_repository()
    model_version = get_settings().ml.model_version

    async def run():
        candidates = await candidate_repo.list_async(limit=limit)
        current = await candidate_repo.count_with_current_vectors_async(model_version)
        return candidates, current

    try:
        candidates, current = asyncio.run(run())
    except TalentMatchError as e:
        console.print(f"[red]Error listing candidates: {e.message}[/red]")
        raise typer.Exit(1)
    finally:
        get_database_manager().close_all()

    if not candidates:
        console.print("[yellow]No candidates found.[/yellow]")
        raise typer.Exit(0)

    table = Table(title=f"Candidates ({len(candidates)} shown, {current} searchable)")
    table.add_column("ID", style="dim", width=24)
    table.add_column("Name", style="cyan")
    table.add_column("Experience", justify="right")
    table.add_column("Roles")
    table.add_column("Skills", justify="right")
    table.add_column("Vector", justify="center")

    for candidate in candidates:
        name = candidate.name
        if candidate.vector_model == model_version:
            vector_state = "[green]current[/green]"
        elif candidate.vector_model:
            vector_state = "[yellow]stale[/yellow]"
        else:
            vector_state = "[red]missing[/red]"

        table.add_row(
            str(candidate.id),
            name[:30] + "..." if len(name) > 30 else name,
            f"{candidate.experience:g}",
            ", ".join(candidate.role) or "-",
            str(len(candidate.skills)),
            vector_state,
        )

    console.print(table)


@app.command()
def embed_candidates(
    stale_only: bool = typer.Option(False, "--stale-only", help="Only embed candidates without a current vector"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", "-c", min=1, help="Parallel embeddings"),
):
    """Generate and store embeddings for candidate profiles."""
    from talentmatch.core.matching import CandidateEmbeddingRefresher
    from talentmatch.data.database import get_database_manager
    from talentmatch.utils.exceptions import TalentMatchError

    _require_connection()
    refresher = CandidateEmbeddingRefresher(concurrency=concurrency)

    console.print(
        f"[yellow]Embedding candidates with {refresher.embedder.model_version}"
        f"{' (stale only)' if stale_only else ''}...[/yellow]"
    )

    try:
        report = asyncio.run(refresher.refresh_all(only_stale=stale_only))
    except TalentMatchError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1)
    finally:
        get_database_manager().close_all()

    console.print(
        f"\n  Processed [cyan]{report.total}[/cyan] candidate(s) in "
        f"{report.duration_seconds:.1f}s: "
        f"[green]{report.succeeded} succeeded[/green], [red]{report.failed} failed[/red]"
    )

    if report.failures:
        table = Table(title="Failed Candidates")
        table.add_column("ID", style="dim", width=24)
        table.add_column("Name", style="cyan")
        table.add_column("Error Kind", style="red")
        table.add_column("Error")
        for outcome in report.failures:
            table.add_row(outcome.record_id, outcome.label or "-", outcome.error_kind or "-", outcome.error or "")
        console.print(table)
        raise typer.Exit(1)


@app.command()
def match(
    description: str = typer.Argument(..., help="Job description text"),
    min_experience: Optional[float] = typer.Option(None, "--min-experience", "-e", help="Minimum years of experience"),
    role: Optional[list[str]] = typer.Option(None, "--role", "-r", help="Accepted role (repeatable)"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Number of candidates to show"),
):
    """Find the candidates best matching a job description."""
    from talentmatch.core.matching import get_candidate_matcher
    from talentmatch.data.database import get_database_manager
    from talentmatch.utils.exceptions import InvalidInput, TalentMatchError

    filters = {"min_experience": min_experience, "roles": role or []}
    matcher = get_candidate_matcher()

    try:
        result = asyncio.run(matcher.match(description, filters=filters, limit=limit))
    except InvalidInput as e:
        console.print(f"[red]Invalid query: {e.message}[/red]")
        raise typer.Exit(2)
    except TalentMatchError as e:
        console.print("[red]Unable to compute matches right now.[/red]")
        console.print(f"[dim]{e.error_code}: {e.message}[/dim]")
        raise typer.Exit(1)
    finally:
        get_database_manager().close_all()

    if result.is_empty:
        console.print("[yellow]No candidates matched.[/yellow]")
        console.print(f"[dim]{result.pool_size} candidate(s) were considered.[/dim]")
        raise typer.Exit(0)

    table = Table(title=f"Top {len(result)} Matches")
    table.add_column("Rank", justify="right", style="dim")
    table.add_column("ID", style="dim", width=24)
    table.add_column("Name", style="cyan")
    table.add_column("Experience", justify="right")
    table.add_column("Roles")
    table.add_column("Score", justify="right")

    for rank, candidate in enumerate(result.candidates, 1):
        score_color = "green" if candidate.score >= 0.5 else "yellow" if candidate.score >= 0.3 else "red"
        table.add_row(
            str(rank),
            str(candidate.id),
            candidate.name,
            f"{candidate.experience:g}",
            ", ".join(candidate.role) or "-",
            f"[{score_color}]{candidate.score:.3f}[/{score_color}]",
        )

    console.print(table)


@app.command()
def refresh_job_matches(
    job_id: Optional[str] = typer.Argument(None, help="Job posting ID"),
    all_jobs: bool = typer.Option(False, "--all", help="Refresh every job posting"),
):
    """Recompute the stored shortlist of one or all job postings."""
    from talentmatch.core.matching import get_job_match_service
    from talentmatch.data.database import get_database_manager
    from talentmatch.utils.exceptions import TalentMatchError

    if bool(job_id) == all_jobs:
        console.print("[red]Error: Pass either a JOB_ID or --all.[/red]")
        raise typer.Exit(2)

    _require_connection()
    service = get_job_match_service()

    try:
        if all_jobs:
            report = asyncio.run(service.refresh_all_job_matches())
        else:
            stored = asyncio.run(service.refresh_job_matches(job_id))
    except TalentMatchError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1)
    finally:
        get_database_manager().close_all()

    if not all_jobs:
        console.print(f"[green]Stored {len(stored.matches)} match(es) for job {job_id}[/green]")
        return

    console.print(
        f"Refreshed [cyan]{report.total}[/cyan] job(s): "
        f"[green]{report.succeeded} succeeded[/green], [red]{report.failed} failed[/red]"
    )
    for outcome in report.failures:
        console.print(f"  [red]✗[/red] {outcome.record_id}: [{outcome.error_kind}] {outcome.error}")
    if report.failed:
        raise typer.Exit(1)


@app.command()
def job_matches(
    job_id: str = typer.Argument(..., help="Job posting ID"),
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Only entries with this status"),
):
    """Show the stored shortlist of a job posting."""
    from talentmatch.core.matching import get_job_match_service
    from talentmatch.data.database import get_database_manager
    from talentmatch.utils.exceptions import TalentMatchError

    _require_connection()

    try:
        entries = asyncio.run(get_job_match_service().get_job_matches(job_id, status=status))
    except TalentMatchError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1)
    finally:
        get_database_manager().close_all()

    if not entries:
        console.print("[yellow]No stored matches for this job.[/yellow]")
        raise typer.Exit(0)

    table = Table(title=f"Stored Matches for {job_id}")
    table.add_column("Candidate ID", style="dim", width=24)
    table.add_column("Score", justify="right")
    table.add_column("Status", justify="center")
    table.add_column("Matched At")

    for entry in entries:
        status_color = "green" if entry.status == "applied" else "cyan"
        table.add_row(
            str(entry.candidate_id),
            f"{entry.match_score:.3f}",
            f"[{status_color}]{str(entry.status).upper()}[/{status_color}]",
            entry.matched_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


@app.command()
def mark_applied(
    job_id: str = typer.Argument(..., help="Job posting ID"),
    candidate_id: str = typer.Argument(..., help="Candidate ID"),
):
    """Mark a shortlisted candidate as having applied."""
    from talentmatch.core.matching import get_job_match_service
    from talentmatch.data.database import get_database_manager
    from talentmatch.utils.exceptions import TalentMatchError

    _require_connection()

    try:
        asyncio.run(get_job_match_service().mark_candidate_applied(job_id, candidate_id))
    except TalentMatchError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1)
    finally:
        get_database_manager().close_all()

    console.print(f"[green]✓[/green] Candidate {candidate_id} marked as applied for job {job_id}")


@app.command()
def match_jobs(
    candidate_id: str = typer.Argument(..., help="Candidate ID"),
    role: Optional[list[str]] = typer.Option(None, "--role", "-r", help="Accepted job role (repeatable)"),
    fit_experience: bool = typer.Option(
        False, "--fit-experience", help="Only postings asking for at most the candidate's experience"
    ),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Number of job postings to show"),
):
    """Find the job postings best matching a candidate."""
    from talentmatch.core.matching import get_candidate_match_service
    from talentmatch.data.database import get_database_manager
    from talentmatch.utils.exceptions import InvalidInput, RecordNotFound, TalentMatchError

    filters = {"roles": role or [], "fit_experience": fit_experience}
    service = get_candidate_match_service()

    try:
        result = asyncio.run(
            service.match_jobs_for_candidate(candidate_id, filters=filters, limit=limit)
        )
    except (InvalidInput, RecordNotFound) as e:
        console.print(f"[red]Invalid query: {e.message}[/red]")
        raise typer.Exit(2)
    except TalentMatchError as e:
        console.print("[red]Unable to compute matches right now.[/red]")
        console.print(f"[dim]{e.error_code}: {e.message}[/dim]")
        raise typer.Exit(1)
    finally:
        get_database_manager().close_all()

    if result.is_empty:
        console.print("[yellow]No job postings matched.[/yellow]")
        console.print(f"[dim]{result.pool_size} job posting(s) were considered.[/dim]")
        raise typer.Exit(0)

    table = Table(title=f"Top {len(result)} Job Postings for {result.query}")
    table.add_column("Rank", justify="right", style="dim")
    table.add_column("ID", style="dim", width=24)
    table.add_column("Title", style="cyan")
    table.add_column("Company")
    table.add_column("Required", justify="right")
    table.add_column("Score", justify="right")

    for rank, job in enumerate(result.jobs, 1):
        score_color = "green" if job.score >= 0.5 else "yellow" if job.score >= 0.3 else "red"
        table.add_row(
            str(rank),
            str(job.id),
            job.title,
            job.company or "-",
            f"{job.exp_req:g}",
            f"[{score_color}]{job.score:.3f}[/{score_color}]",
        )

    console.print(table)


@app.command()
def refresh_candidate_matches(
    candidate_id: Optional[str] = typer.Argument(None, help="Candidate ID"),
    all_candidates: bool = typer.Option(False, "--all", help="Refresh every active candidate"),
):
    """Recompute the stored job matches of one or all candidates."""
    from talentmatch.core.matching import get_candidate_match_service
    from talentmatch.data.database import get_database_manager
    from talentmatch.utils.exceptions import TalentMatchError

    if bool(candidate_id) == all_candidates:
        console.print("[red]Error: Pass either a CANDIDATE_ID or --all.[/red]")
        raise typer.Exit(2)

    _require_connection()
    service = get_candidate_match_service()

    try:
        if all_candidates:
            report = asyncio.run(service.refresh_all_candidate_matches())
        else:
            stored = asyncio.run(service.refresh_candidate_matches(candidate_id))
    except TalentMatchError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1)
    finally:
        get_database_manager().close_all()

    if not all_candidates:
        console.print(
            f"[green]Stored {len(stored.matches)} job match(es) for candidate {candidate_id}[/green]"
        )
        return

    console.print(
        f"Refreshed [cyan]{report.total}[/cyan] candidate(s): "
        f"[green]{report.succeeded} succeeded[/green], [red]{report.failed} failed[/red]"
    )
    for outcome in report.failures:
        console.print(f"  [red]✗[/red] {outcome.record_id}: [{outcome.error_kind}] {outcome.error}")
    if report.failed:
        raise typer.Exit(1)


@app.command()
def candidate_matches(
    candidate_id: str = typer.Argument(..., help="Candidate ID"),
):
    """Show the stored job matches of a candidate."""
    from talentmatch.core.matching import get_candidate_match_service
    from talentmatch.data.database import get_database_manager
    from talentmatch.utils.exceptions import TalentMatchError

    _require_connection()

    try:
        entries = asyncio.run(get_candidate_match_service().get_candidate_matches(candidate_id))
    except TalentMatchError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1)
    finally:
        get_database_manager().close_all()

    if not entries:
        console.print("[yellow]No stored job matches for this candidate.[/yellow]")
        raise typer.Exit(0)

    table = Table(title=f"Stored Job Matches for {candidate_id}")
    table.add_column("Job ID", style="dim", width=24)
    table.add_column("Score", justify="right")
    table.add_column("Matched At")

    for entry in entries:
        table.add_row(
            str(entry.job_id),
            f"{entry.match_score:.3f}",
            entry.matched_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


if __name__ == "__main__":
    app()
