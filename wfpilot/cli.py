import asyncio
import sys

import click
from rich.console import Console
from rich.table import Table

from wfpilot import __version__
from wfpilot.config import get_settings
from wfpilot.errors import WorkfrontError
from wfpilot.logging_config import setup_logging

console = Console()

PHASE_STYLES = {
    "plan": "cyan",
    "start": "bold",
    "success": "green",
    "error": "red",
    "skip": "dim",
    "info": "blue",
    "delay": "yellow",
}


def parse_selection(item: str):
    """``folder:file`` -> ShareSelection; a bare file name means the root folder."""
    from wfpilot.automation.share import ShareSelection

    folder, sep, file_name = item.partition(":")
    if not sep:
        folder, file_name = "root", item
    if not file_name:
        raise click.BadParameter(f"Missing file name in '{item}'", param_hint="--item")
    return ShareSelection(folder=folder or "root", file_name=file_name)


async def _with_shutdown(coro):
    from wfpilot.browser.manager import browser_manager

    try:
        return await coro
    finally:
        # Playwright is bound to this event loop.
        await browser_manager.close_all()


def _run(coro):
    """Run an automation coroutine, turning expected failures into exit code 1."""
    try:
        return asyncio.run(_with_shutdown(coro))
    except (WorkfrontError, ValueError, FileNotFoundError) as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


def _yes_no(ok: bool) -> str:
    return "[green]yes[/green]" if ok else "[red]no[/red]"


def _print_result(success: bool, message: str):
    if success:
        console.print(f"[green]OK[/green] {message}")
    else:
        console.print(f"[red]FAILED[/red] {message}")
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="wfpilot")
@click.option("--headless/--headed", default=None, help="Override WF_HEADLESS_DEFAULT for this run")
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR (default: WFPILOT_LOG_LEVEL)")
@click.pass_context
def main(ctx, headless, log_level):
    """wfpilot - Workfront document and status automation."""
    setup_logging(level=log_level)
    ctx.ensure_object(dict)
    ctx.obj["headless"] = headless


@main.command()
def version():
    """Show version information."""
    console.print(f"[bold cyan]wfpilot[/bold cyan] v{__version__}")


@main.command("config")
def show_config():
    """Show the resolved settings."""
    settings = get_settings()
    table = Table(show_header=False, box=None)
    table.add_column("Setting", style="dim")
    table.add_column("Value")
    for key, value in settings.to_dict().items():
        table.add_row(key, str(value))
    table.add_row("headless (resolved)", str(settings.resolve_headless()))
    table.add_row("state file present", "yes" if settings.state_file.exists() else "[yellow]no[/yellow]")
    console.print(table)


@main.command()
def teams():
    """List the configured teams."""
    from wfpilot.teams import get_team_directory

    table = Table(title="Teams")
    table.add_column("Key", style="cyan")
    table.add_column("Members")
    for team in get_team_directory().all():
        members = ", ".join(f"{m.name} ({m.role})" for m in team.members)
        table.add_row(team.key, members)
    console.print(table)


@main.command("preview-comment")
@click.argument("comment_type")
@click.argument("team")
def preview_comment(comment_type: str, team: str):
    """Show the comment that would be posted, without opening a browser."""
    from wfpilot.automation.comment import CommentAutomation

    try:
        draft = CommentAutomation().preview(comment_type, team)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    console.print(f"[dim]{draft.comment_type.value}[/dim]")
    console.print(draft.text)


@main.command()
@click.argument("project_url")
@click.option("--item", "items", multiple=True, required=True, help="folder:file to share (repeatable)")
@click.option("--team", default="test", show_default=True, help="Team to share with")
@click.pass_context
def share(ctx, project_url: str, items, team: str):
    """Share documents with every member of a team."""
    from wfpilot.automation.share import ShareAutomation

    selections = [parse_selection(i) for i in items]
    batch = _run(ShareAutomation().share_documents(project_url, selections, team, headless=ctx.obj["headless"]))

    table = Table(title="Share results")
    table.add_column("Folder")
    table.add_column("File")
    table.add_column("Result")
    for r in batch.results:
        table.add_row(r.folder, r.file_name, "[green]shared[/green]" if r.success else f"[red]{r.error}[/red]")
    console.print(table)
    _print_result(batch.success, f"{batch.success_count} ok / {batch.error_count} errors")


@main.command()
@click.argument("project_url")
@click.argument("folder")
@click.argument("file_name")
@click.option("--type", "comment_type", default="assetRelease", show_default=True)
@click.option("--team", default="test", show_default=True)
@click.option("--mode", type=click.Choice(["plain", "raw"]), default="plain", show_default=True)
@click.option("--raw-html", default=None, help="HTML body for --mode raw")
@click.pass_context
def comment(ctx, project_url, folder, file_name, comment_type, team, mode, raw_html):
    """Add a comment with team mentions to a document."""
    from wfpilot.automation.comment import CommentAutomation

    result = _run(CommentAutomation().add_comment(
        project_url, folder, file_name, comment_type, team,
        mode=mode, raw_html=raw_html, headless=ctx.obj["headless"],
    ))
    _print_result(result.success, result.message)


@main.command()
@click.argument("project_url")
@click.argument("status")
@click.pass_context
def status(ctx, project_url: str, status: str):
    """Update the deliverable status (Round 1 Review ... Delivered)."""
    from wfpilot.automation.status import StatusAutomation

    result = _run(StatusAutomation().update_deliverable_status(project_url, status, headless=ctx.obj["headless"]))
    _print_result(result.success, result.message)


@main.command()
@click.argument("project_url")
@click.argument("hours", type=float)
@click.option("--note", default=None)
@click.option("--task", "task_name", default=None, help="Task row to log against")
@click.pass_context
def hours(ctx, project_url: str, hours: float, note, task_name):
    """Log hours on a project task."""
    from wfpilot.automation.hours import HoursAutomation

    result = _run(HoursAutomation().log_hours(project_url, hours, note, task_name, headless=ctx.obj["headless"]))
    _print_result(result.success, result.message)


@main.command()
@click.argument("project_url")
@click.option("--asset-zip", default=None, type=click.Path(exists=True, dir_okay=False))
@click.option("--final", "finals", multiple=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--team", default="test", show_default=True)
@click.pass_context
def upload(ctx, project_url: str, asset_zip, finals, team: str):
    """Upload the asset ZIP and final materials, then share and comment."""
    from wfpilot.automation.upload import UploadAutomation, compute_upload_estimates, format_seconds

    estimate = compute_upload_estimates(([asset_zip] if asset_zip else []) + list(finals))
    console.print(f"Estimated upload time: [bold]{format_seconds(estimate.total)}[/bold]")

    plan = _run(UploadAutomation().execute_upload_plan(
        project_url, team, asset_zip, list(finals), headless=ctx.obj["headless"],
    ))

    table = Table(title="Upload results")
    table.add_column("Kind", style="dim")
    table.add_column("File")
    table.add_column("Upload")
    table.add_column("Share")
    table.add_column("Comment")
    for r in plan.results:
        table.add_row(r.kind, r.file_name, _yes_no(r.upload_success), _yes_no(r.share_success), _yes_no(r.comment_success))
    console.print(table)
    _print_result(plan.success, plan.message)


@main.command()
@click.argument("workflow_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--notify", is_flag=True, help="Send a desktop notification when finished")
@click.option("--user", "user_id", default=None, help="User id for upload job tracking")
@click.pass_context
def run(ctx, workflow_file: str, notify: bool, user_id):
    """Run a workflow JSON file with live progress."""
    from wfpilot.workflow.models import load_timeline_config
    from wfpilot.workflow.timeline import TimelineRunner

    try:
        config = load_timeline_config(workflow_file)
    except (ValueError, KeyError) as e:
        console.print(f"[red]Invalid workflow file:[/red] {e}")
        sys.exit(1)
    if ctx.obj["headless"] is not None:
        config.headless = ctx.obj["headless"]
    if user_id:
        config.user_id = user_id

    runner = TimelineRunner()
    runner.progress.subscribe(_print_progress)
    result = _run(runner.execute(config))

    table = Table(title="Workflow results")
    table.add_column("Action")
    table.add_column("Result")
    table.add_column("Message")
    table.add_column("Duration", justify="right")
    for r in result.results:
        table.add_row(
            r.action.value,
            "[green]ok[/green]" if r.success else "[red]failed[/red]",
            r.message or r.error or "",
            f"{r.duration_ms / 1000:.1f}s",
        )
    console.print(table)
    summary = result.summary.to_dict()
    if result.job_id:
        console.print(f"Upload job: [cyan]{result.job_id}[/cyan]")

    if notify:
        from wfpilot.notifier import notify_workflow_finished
        notify_workflow_finished(config.project_url, summary)

    _print_result(
        result.success,
        f"{summary['successful']} ok / {summary['failed']} failed / {summary['skipped']} skipped",
    )


def _print_progress(event):
    style = PHASE_STYLES.get(event.phase, "")
    position = ""
    if event.step_index is not None and event.total_steps:
        position = f"[{event.step_index + 1}/{event.total_steps}] "
    console.print(f"[{style}]{event.phase:>7}[/{style}] {position}{event.action or ''}: {event.message}")


@main.command("init-workflow")
@click.argument("output", type=click.Path(dir_okay=False))
@click.argument("project_url")
@click.option("--preset", type=click.Choice(["upload", "share-comment"]), default="upload", show_default=True)
@click.option("--item", "items", multiple=True, help="folder:file to share (share-comment preset)")
@click.option("--asset-zip", default=None, help="Asset ZIP path (upload preset)")
@click.option("--final", "finals", multiple=True, help="Final material path (upload preset)")
@click.option("--team", default="test", show_default=True)
def init_workflow(output: str, project_url: str, preset: str, items, asset_zip, finals, team: str):
    """Write a preset workflow file to edit and pass to `run`."""
    from wfpilot.workflow.models import save_timeline_config, share_and_comment_workflow, upload_workflow

    if preset == "upload":
        if not asset_zip and not finals:
            raise click.UsageError("The upload preset needs --asset-zip or --final")
        config = upload_workflow(project_url, asset_zip, list(finals), team=team)
    else:
        if not items:
            raise click.UsageError("The share-comment preset needs at least one --item")
        selections = [parse_selection(i).to_dict() for i in items]
        config = share_and_comment_workflow(project_url, selections, team=team)

    path = save_timeline_config(config, output)
    enabled = sum(1 for s in config.steps if s.enabled)
    console.print(f"[green]Wrote[/green] {path} ({enabled} of {len(config.steps)} steps enabled)")


# ==================== Upload Jobs ====================

@main.group()
def jobs():
    """Inspect and cancel upload jobs."""
    pass


def _jobs_table(items):
    table = Table(title="Upload jobs")
    table.add_column("ID", style="cyan")
    table.add_column("User")
    table.add_column("Status")
    table.add_column("Project")
    table.add_column("Files")
    for job in items:
        table.add_row(job.id, job.user_id, job.status.value, job.project_url, ", ".join(job.file_names))
    return table


@jobs.command("list")
@click.option("--user", "user_id", default=None)
@click.option("--all", "show_all", is_flag=True, help="Show jobs of every user")
def jobs_list(user_id, show_all: bool):
    """List upload jobs for a user."""
    from wfpilot.workflow.jobs import UploadJobStore

    if not user_id and not show_all:
        raise click.UsageError("Pass --user or --all")
    console.print(_jobs_table(UploadJobStore().list_for_user(user_id, is_admin=show_all)))


@jobs.command("search")
@click.argument("query")
@click.option("--user", "user_id", default=None)
@click.option("--all", "show_all", is_flag=True, help="Search jobs of every user")
def jobs_search(query: str, user_id, show_all: bool):
    """Search jobs by project URL, title, DSID or file name."""
    from wfpilot.workflow.jobs import UploadJobStore

    console.print(_jobs_table(UploadJobStore().search(query, user_id, is_admin=show_all)))


@jobs.command("cancel")
@click.argument("job_id")
@click.option("--user", "user_id", required=True)
@click.option("--admin", is_flag=True, help="Cancel a job owned by another user")
def jobs_cancel(job_id: str, user_id: str, admin: bool):
    """Cancel a staged or executing job."""
    from wfpilot.workflow.jobs import UploadJobStore

    if UploadJobStore().cancel(job_id, user_id, is_admin=admin):
        console.print(f"[green]Canceled[/green] {job_id}")
    else:
        console.print(f"[red]Could not cancel[/red] {job_id} (not found, not yours, or already finished)")
        sys.exit(1)


if __name__ == "__main__":
    main()
