"""
Orchestrator CLI - Command line interface for running the queue by hand.

Usage:
    orchestrator --help            Show all commands
    orchestrator worker            Run one worker cycle
    orchestrator cron              Evaluate trigger rules for the current hour
    orchestrator enqueue job.json  Enqueue a job from a JSON file
    orchestrator status            Show job counts per status
"""

import asyncio
import json
from pathlib import Path

import typer
from pydantic import ValidationError

app = typer.Typer(
    name="orchestrator",
    help="Orchestrator CLI - Job queue, worker and workflow triggers",
    no_args_is_help=True,
)


# --- Printer helpers ---


def _print_success(message: str) -> None:
    """Print a success message."""
    typer.echo(f"  ✅ {message}")


def _print_warning(message: str) -> None:
    """Print a warning message."""
    typer.echo(f"  ⚠️ {message}")


def _print_skipped(message: str) -> None:
    """Print a skipped step message."""
    typer.echo(f"  ⏭️ {message}")


def _print_error(message: str) -> None:
    """Print an error message to stderr."""
    typer.echo(f"❌ {message}", err=True)


@app.command()
def worker():
    """Run one worker cycle (lease, execute and record a batch of jobs)."""
    from orchestrator.core.logging import setup_logging
    from orchestrator.jobs.worker import main

    setup_logging()
    summary = asyncio.run(main())

    if summary.leased == 0:
        _print_skipped(summary.message or "No jobs available")
        return

    for result in summary.results:
        if result.ok:
            _print_success(f"{result.step_id} ({result.job_id}): {result.status}")
        else:
            _print_warning(f"{result.step_id} ({result.job_id}): {result.status} {result.error or ''}")


@app.command()
def cron():
    """Evaluate time-driven trigger rules for the current hour."""
    from orchestrator.core.logging import setup_logging
    from orchestrator.jobs.cron import main

    setup_logging()
    summary = asyncio.run(main())

    if summary.workflows_triggered == 0:
        _print_skipped(f"No workflows due at {summary.timestamp}")
        return

    for result in summary.results:
        if result.success:
            _print_success(f"{result.workflow} -> {result.user_id}")
        else:
            _print_warning(f"{result.workflow} -> {result.user_id}: {result.error}")


@app.command()
def enqueue(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON file with the job"),
):
    """Enqueue a job described by a JSON file."""
    from orchestrator.config import get_settings
    from orchestrator.core.logging import setup_logging
    from orchestrator.schemas.jobs import JobCreate
    from orchestrator.services.factory import build_job_store

    setup_logging()

    try:
        job = JobCreate.model_validate(json.loads(file.read_text()))
    except (json.JSONDecodeError, ValidationError) as e:
        _print_error(f"Invalid job file: {e}")
        raise typer.Exit(1) from e

    job_id = asyncio.run(build_job_store(get_settings()).enqueue(job))
    _print_success(f"Enqueued {job.workflow_run_id}/{job.step_id} as {job_id}")


@app.command()
def status():
    """Show job counts per status."""
    from orchestrator.config import get_settings
    from orchestrator.services.factory import build_job_store

    counts = asyncio.run(build_job_store(get_settings()).counts_by_status())

    typer.echo("")
    for name, count in counts.items():
        typer.echo(f"  {name:<8} {count}")
    typer.echo(f"  {'total':<8} {sum(counts.values())}\n")


@app.command()
def migrate():
    """Run database migrations (alembic upgrade head)."""
    import subprocess

    result = subprocess.run(["alembic", "upgrade", "head"], check=False)
    raise typer.Exit(result.returncode)


@app.command()
def serve(
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable hot reload"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to run on"),
):
    """Start the API server."""
    import subprocess

    cmd = ["uvicorn", "orchestrator.main:app", "--host", "0.0.0.0", "--port", str(port)]
    if reload:
        cmd.append("--reload")

    subprocess.run(cmd, check=False)


if __name__ == "__main__":
    app()
