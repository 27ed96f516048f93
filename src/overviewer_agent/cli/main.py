"""Operator CLI for overviewer-agent."""

from pathlib import Path

import click
import yaml
from rich.console import Console
from rich.table import Table

from ..core.config import DEFAULT_CONFIG_PATH, OverviewerConfig, load_config
from ..core.job import Job, JobStatus, TaskType, TriggerType
from ..errors import InvalidStatusTransition, JobNotFoundError
from ..queue import create_queue

console = Console()

STATUS_STYLES = {
    JobStatus.QUEUED.value: "yellow",
    JobStatus.IN_PROGRESS.value: "cyan",
    JobStatus.COMPLETED.value: "green",
    JobStatus.FAILED.value: "red",
    JobStatus.CANCELLED.value: "dim",
}


def _styled_status(status) -> str:
    value = JobStatus(status).value
    return f"[{STATUS_STYLES[value]}]{value}[/]"


def _format_time(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


def _parse_params(pairs: tuple[str, ...]) -> dict:
    params = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected key=value, got '{pair}'", param_hint="--param")
        params[key] = value
    return params


@click.group()
@click.option("--config", "-c", "config_path", default=str(DEFAULT_CONFIG_PATH), help="Config file")
@click.pass_context
def cli(ctx, config_path):
    """Overviewer Agent - autonomous repository maintenance jobs."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config_path)


def _queue(ctx):
    if "queue" not in ctx.obj:
        config = load_config(ctx.obj["config_path"])
        ctx.obj["queue"] = create_queue(config.queue)
    return ctx.obj["queue"]


@cli.command()
@click.option("--force", is_flag=True, help="Overwrite an existing config file")
@click.pass_context
def init(ctx, force):
    """Write a default config file and create the queue directories."""
    config_path = ctx.obj["config_path"]
    console.print("[bold green]Initializing overviewer-agent...[/]")

    if config_path.exists() and not force:
        console.print(f"  Config already exists: {config_path} (use --force to overwrite)")
    else:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        defaults = OverviewerConfig().model_dump(
            mode="json",
            exclude={"github": {"private_key", "token"}, "llm": {"api_key"}},
        )
        config_path.write_text(yaml.safe_dump(defaults, sort_keys=False))
        console.print(f"  Created {config_path}")

    config = load_config(config_path)
    create_queue(config.queue)
    console.print(f"  Queue backend: {config.queue.backend}")

    console.print("[green]✓ Initialization complete![/]")
    console.print("\nNext steps:")
    console.print("1. Set github.app_id and github.private_key_path (or github.token)")
    console.print("2. Set llm.model and the provider API key")
    console.print("3. Run 'overviewer worker worker-1'")


@cli.command()
@click.option("--repo", "-r", required=True, help="Repository as owner/name")
@click.option("--installation-id", "-i", type=int, required=True, help="GitHub App installation id")
@click.option(
    "--task-type", "-t",
    type=click.Choice([t.value for t in TaskType]),
    default=TaskType.BUG_FIX.value,
    show_default=True,
)
@click.option("--issue", "-n", type=int, help="Issue number the job addresses")
@click.option("--title", help="Issue title")
@click.option("--body", help="Issue body or instructions")
@click.option("--ref", help="Branch to clone instead of the default branch")
@click.option("--param", "-p", multiple=True, help="Extra task parameter as key=value")
@click.pass_context
def enqueue(ctx, repo, installation_id, task_type, issue, title, body, ref, param):
    """Queue a new job."""
    owner, sep, name = repo.partition("/")
    if not sep or not owner or not name:
        raise click.BadParameter("expected owner/name", param_hint="--repo")

    task_params = _parse_params(param)
    if issue is not None:
        task_params["issueNumber"] = issue
    if title:
        task_params["issueTitle"] = title
    if body:
        task_params["issueBody"] = body

    job = Job(
        installation_id=installation_id,
        repo_owner=owner,
        repo_name=name,
        task_type=TaskType(task_type),
        task_params=task_params,
        trigger_type=TriggerType.ISSUE_OPENED if issue is not None else None,
        ref_name=ref,
    )
    job_id = _queue(ctx).enqueue(job)
    console.print(f"[green]✓ Queued job {job_id}[/] ({task_type} on {repo})")


@cli.command()
@click.argument("job_id")
@click.pass_context
def status(ctx, job_id):
    """Show one job's status record."""
    job = _queue(ctx).get_job(job_id)
    if job is None:
        console.print(f"[red]Job not found: {job_id}[/]")
        raise SystemExit(1)

    table = Table(show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("ID", job.id)
    table.add_row("Repository", job.repo_slug)
    table.add_row("Task", str(job.task_type))
    table.add_row("Status", _styled_status(job.status))
    table.add_row("Retries", str(job.retry_count))
    table.add_row("Created", _format_time(job.created_at))
    table.add_row("Started", _format_time(job.started_at))
    table.add_row("Completed", _format_time(job.completed_at))
    if job.not_before:
        table.add_row("Not before", _format_time(job.not_before))
    if job.last_error:
        table.add_row("Error", job.last_error)
    for key, value in (job.result or {}).items():
        table.add_row(f"result.{key}", str(value))
    console.print(table)


@cli.command()
@click.option("--status", "-s", "status_filter", type=click.Choice([s.value for s in JobStatus]))
@click.option("--limit", "-n", default=20, show_default=True)
@click.pass_context
def jobs(ctx, status_filter, limit):
    """List jobs, newest first."""
    queue = _queue(ctx)
    if status_filter:
        found = list(reversed(queue.get_jobs_by_status(JobStatus(status_filter))))[:limit]
    else:
        found = queue.list_jobs(limit=limit)

    if not found:
        console.print("[dim]No jobs[/]")
        return

    table = Table()
    table.add_column("ID", style="cyan")
    table.add_column("Repository")
    table.add_column("Task")
    table.add_column("Status")
    table.add_column("Retries", justify="right")
    table.add_column("Created")
    table.add_column("Outcome")
    for job in found:
        outcome = (job.result or {}).get("pr_url") or (job.result or {}).get("outcome") or ""
        table.add_row(
            job.id[:8],
            job.repo_slug,
            str(job.task_type),
            _styled_status(job.status),
            str(job.retry_count),
            _format_time(job.created_at),
            outcome,
        )
    console.print(table)


@cli.command()
@click.argument("job_id")
@click.pass_context
def cancel(ctx, job_id):
    """Cancel a queued job."""
    try:
        cancelled = _queue(ctx).cancel(job_id)
    except JobNotFoundError as e:
        console.print(f"[red]{e}[/]")
        raise SystemExit(1)
    if cancelled:
        console.print(f"[green]✓ Cancelled {job_id}[/]")
    else:
        console.print(f"[yellow]Job {job_id} is not queued; nothing to cancel[/]")


@cli.command()
@click.argument("job_id")
@click.pass_context
def retry(ctx, job_id):
    """Put a failed job back on the queue."""
    try:
        job = _queue(ctx).retry(job_id)
    except (JobNotFoundError, InvalidStatusTransition) as e:
        console.print(f"[red]Error: {e}[/]")
        raise SystemExit(1)
    console.print(f"[green]✓ Requeued {job_id}[/] (retry {job.retry_count})")


@cli.command()
@click.pass_context
def stats(ctx):
    """Show job counts per status."""
    counts = _queue(ctx).stats()

    table = Table(title="Queue")
    table.add_column("Status")
    table.add_column("Jobs", justify="right")
    for status_value in STATUS_STYLES:
        table.add_row(_styled_status(status_value), str(counts.get(status_value, 0)))
    table.add_row("[bold]pending entries[/]", str(counts.get("pending_entries", 0)))
    console.print(table)


@cli.command()
@click.argument("worker_id")
@click.pass_context
def worker(ctx, worker_id):
    """Run a worker in the foreground."""
    from ..run_worker import run

    run(worker_id, ctx.obj["config_path"])


if __name__ == "__main__":
    cli()
