"""Command-line interface for the SolidTime timer client."""

import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Optional, TypeVar

import typer
from rich.console import Console
from rich.live import Live
from rich.prompt import Confirm, Prompt
from rich.table import Table

from solidtime_timer import __version__
from solidtime_timer.config import Config
from solidtime_timer.errors import SolidTimeError
from solidtime_timer.session import DataCache, TimerSession
from solidtime_timer.session.display import status_line, timer_details
from solidtime_timer.solidtime.models import Project, Task
from solidtime_timer.utils import ConsoleNotifier, setup_logging

app = typer.Typer(help="Start, stop and inspect your SolidTime timer")
console = Console()
logger = logging.getLogger(__name__)

T = TypeVar("T")

CONFIG_DIR_OPTION = typer.Option(
    None,
    "--config-dir",
    help="Configuration directory. Defaults to ~/.solidtime-timer/",
)
VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Enable verbose logging.")


def _run(
    action: Callable[[TimerSession], Awaitable[T]],
    config_dir: Optional[Path],
    verbose: bool = False,
    schedule: bool = False,
) -> T:
    """Run ``action`` inside an initialized session.

    SolidTime errors were already shown to the user by the component that
    raised them, so they only set the exit code here.
    """
    setup_logging(
        log_level=logging.DEBUG if verbose else logging.INFO,
        config_dir=config_dir,
    )

    async def runner() -> T:
        config = Config(config_dir)
        async with TimerSession(config, notifier=ConsoleNotifier(console)) as session:
            await session.initialize(schedule=schedule)
            return await action(session)

    try:
        return asyncio.run(runner())
    except SolidTimeError as e:
        logger.debug(f"Command failed: {e}")
        raise typer.Exit(code=1)


def _require_configured(session: TimerSession) -> None:
    missing = session.config.missing()
    if missing:
        console.print(f"[yellow]SolidTime {', '.join(missing)} not set.[/yellow]")
        console.print("Run: solidtime-timer configure")
        raise typer.Exit(code=1)


def _resolve_project(cache: DataCache, ref: str) -> Project:
    project = cache.project(ref) or cache.find_project_by_name(ref)
    if project is None:
        raise typer.BadParameter(f"Unknown project: {ref}", param_hint="--project")
    return project


def _resolve_task(cache: DataCache, ref: str, project_id: Optional[str]) -> Task:
    task = cache.task(ref) or cache.find_task_by_name(ref, project_id)
    if task is None:
        raise typer.BadParameter(f"Unknown task: {ref}", param_hint="--task")
    if project_id and task.project_id != project_id:
        raise typer.BadParameter(
            f"Task {task.name} does not belong to the selected project", param_hint="--task"
        )
    return task


async def _resolve_tags(session: TimerSession, refs: list[str], create: bool) -> list[str]:
    tag_ids = []
    for ref in refs:
        tag = next((t for t in session.cache.tags if t.id == ref), None)
        tag = tag or session.cache.find_tag_by_name(ref)
        if tag is None:
            if not create:
                raise typer.BadParameter(
                    f"Unknown tag: {ref} (use --create-tags to create it)", param_hint="--tag"
                )
            tag = await session.cache.create_tag(session.config.settings.selected_organization_id, ref)
        tag_ids.append(tag.id)
    return tag_ids


def _print_details(session: TimerSession) -> None:
    entry = session.controller.active_entry
    if entry is None:
        console.print(status_line(session.controller, session.cache))
        return
    table = Table(title="SolidTime Timer", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    for label, value in timer_details(entry, session.cache):
        table.add_row(label, value)
    console.print(table)


# ----------------------------------------------------------------------
# Configuration
# ----------------------------------------------------------------------
def _check_configuration_status(config: Config) -> None:
    """Display current configuration status."""
    settings = config.settings
    console.print("[bold cyan]Current Configuration Status[/bold cyan]")

    def mark(ok: bool) -> str:
        return "[green]✓ Configured[/green]" if ok else "[yellow]✗ Not configured[/yellow]"

    console.print(f"  API key:       {mark(bool(settings.api_key))}")
    console.print(f"  API base URL:  {settings.api_base_url or '-'}")
    console.print(f"  Organization:  {mark(bool(settings.selected_organization_id))}")
    console.print()


@app.command()
def configure(
    api_key: Optional[str] = typer.Option(None, "--api-key", help="SolidTime API token."),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="SolidTime API base URL."),
    organization: Optional[str] = typer.Option(
        None, "--organization", help="Organization ID to track time in."
    ),
    billable: Optional[bool] = typer.Option(
        None, "--billable/--no-billable", help="Default billable flag for new timers."
    ),
    status_interval: Optional[int] = typer.Option(
        None, "--status-interval", min=0, help="Seconds between timer refreshes (0 disables)."
    ),
    data_interval: Optional[int] = typer.Option(
        None, "--data-interval", min=0, help="Minutes between project/task/tag refreshes (0 disables)."
    ),
    config_dir: Optional[Path] = CONFIG_DIR_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Configure API credentials, organization and refresh intervals."""
    config = Config(config_dir)
    console.print("[bold cyan]SolidTime Timer Configuration[/bold cyan]")
    console.print()
    _check_configuration_status(config)

    current = config.settings
    if api_key is None:
        api_key = Prompt.ask(
            "Enter your SolidTime API key",
            password=True,
            default=current.api_key or None,
            show_default=False,
        )
    if base_url is None:
        base_url = Prompt.ask("Enter the SolidTime API base URL", default=current.api_base_url)

    async def action(session: TimerSession) -> None:
        await session.apply_settings(api_key=api_key or "", api_base_url=base_url or "")
        user = session.cache.current_user
        if user is None:
            console.print("[red]✗ Could not verify user. Check API key and base URL.[/red]")
            raise typer.Exit(code=1)
        console.print(f"[green]✓ Connected to SolidTime as {user.name}[/green]")

        memberships = await session.memberships()
        if not memberships:
            console.print("[yellow]No organizations found for this user.[/yellow]")
            raise typer.Exit(code=1)

        org_id = organization
        if org_id is None:
            table = Table(title="Organizations")
            table.add_column("#", style="cyan")
            table.add_column("Name", style="magenta")
            table.add_column("ID", style="green")
            for index, membership in enumerate(memberships, start=1):
                table.add_row(str(index), membership.organization.name, membership.organization.id)
            console.print(table)
            default = next(
                (
                    str(index)
                    for index, m in enumerate(memberships, start=1)
                    if m.organization.id == session.config.settings.selected_organization_id
                ),
                "1",
            )
            choice = Prompt.ask(
                "Select organization",
                choices=[str(i) for i in range(1, len(memberships) + 1)],
                default=default,
            )
            org_id = memberships[int(choice) - 1].organization.id

        membership = await session.select_organization(org_id)
        console.print(f"[green]✓ Organization: {membership.organization.name}[/green]")

        changes = {}
        if billable is not None:
            changes["default_billable"] = billable
        if status_interval is not None:
            changes["status_refresh_interval_seconds"] = status_interval
        if data_interval is not None:
            changes["data_refresh_interval_minutes"] = data_interval
        if changes:
            await session.apply_settings(**changes)

    _run(action, config_dir, verbose)
    console.print("\n[green]Configuration complete![/green]")
    console.print("Run 'solidtime-timer start' to start a timer.")


@app.command()
def organizations(
    config_dir: Optional[Path] = CONFIG_DIR_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """List organizations you belong to."""

    async def action(session: TimerSession) -> None:
        memberships = await session.memberships()
        selected = session.config.settings.selected_organization_id
        table = Table(title="Organizations")
        table.add_column("Name", style="cyan")
        table.add_column("ID", style="green")
        table.add_column("Role", style="magenta")
        table.add_column("Selected", style="yellow")
        for membership in memberships:
            org = membership.organization
            table.add_row(org.name, org.id, membership.role or "-", "✓" if org.id == selected else "")
        console.print(table)

    _run(action, config_dir, verbose)


@app.command()
def whoami(
    config_dir: Optional[Path] = CONFIG_DIR_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Refresh and show the authenticated user."""

    async def action(session: TimerSession) -> None:
        user = await session.cache.refresh_user()
        console.print(f"[green]{user.name}[/green] <{user.email}>")
        if user.timezone:
            console.print(f"Timezone: {user.timezone}")

    _run(action, config_dir, verbose)


# ----------------------------------------------------------------------
# Timer
# ----------------------------------------------------------------------
@app.command()
def status(
    config_dir: Optional[Path] = CONFIG_DIR_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Show the current timer."""

    async def action(session: TimerSession) -> None:
        _print_details(session)

    _run(action, config_dir, verbose)


@app.command()
def start(
    description: Optional[str] = typer.Option(None, "--description", "-d", help="What you are working on."),
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Project name or ID."),
    task: Optional[str] = typer.Option(None, "--task", "-t", help="Task name or ID (needs --project)."),
    tags: Optional[list[str]] = typer.Option(None, "--tag", help="Tag name or ID. Repeatable."),
    create_tags: bool = typer.Option(False, "--create-tags", help="Create unknown tags."),
    billable: Optional[bool] = typer.Option(
        None, "--billable/--no-billable", help="Defaults to the configured default."
    ),
    config_dir: Optional[Path] = CONFIG_DIR_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Start a timer."""

    async def action(session: TimerSession) -> None:
        _require_configured(session)
        project_id = _resolve_project(session.cache, project).id if project else None
        if task and not project_id:
            raise typer.BadParameter("A task needs a project", param_hint="--task")
        task_id = _resolve_task(session.cache, task, project_id).id if task else None
        tag_ids = await _resolve_tags(session, tags or [], create_tags)
        if billable is None and project_id:
            chosen = session.cache.project(project_id)
            is_billable = chosen.is_billable if chosen else None
        else:
            is_billable = billable
        await session.controller.start(
            description=description,
            project_id=project_id,
            task_id=task_id,
            tag_ids=tag_ids,
            billable=is_billable,
        )
        _print_details(session)

    _run(action, config_dir, verbose)


@app.command()
def stop(
    config_dir: Optional[Path] = CONFIG_DIR_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Stop the running timer."""

    async def action(session: TimerSession) -> None:
        _require_configured(session)
        stopped = await session.controller.stop()
        console.print(f"Tracked {timer_details(stopped, session.cache)[0][1]}")

    _run(action, config_dir, verbose)


@app.command()
def update(
    description: Optional[str] = typer.Option(None, "--description", "-d", help="New description."),
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Project name or ID."),
    no_project: bool = typer.Option(False, "--no-project", help="Remove the project."),
    task: Optional[str] = typer.Option(None, "--task", "-t", help="Task name or ID."),
    tags: Optional[list[str]] = typer.Option(None, "--tag", help="Replace tags. Repeatable."),
    no_tags: bool = typer.Option(False, "--no-tags", help="Remove all tags."),
    create_tags: bool = typer.Option(False, "--create-tags", help="Create unknown tags."),
    billable: Optional[bool] = typer.Option(None, "--billable/--no-billable"),
    config_dir: Optional[Path] = CONFIG_DIR_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Change the running timer. Only the given fields change."""

    async def action(session: TimerSession) -> None:
        _require_configured(session)
        entry = session.controller.active_entry
        if entry is None:
            console.print("[yellow]No timer is running.[/yellow]")
            raise typer.Exit(code=1)

        changes: dict = {}
        if description is not None:
            changes["description"] = description or None
        if no_project:
            changes["project_id"] = None
        elif project:
            changes["project_id"] = _resolve_project(session.cache, project).id
        if task:
            project_id = changes.get("project_id", entry.project_id)
            changes["task_id"] = _resolve_task(session.cache, task, project_id).id
        if no_tags:
            changes["tag_ids"] = []
        elif tags:
            changes["tag_ids"] = await _resolve_tags(session, tags, create_tags)
        if billable is not None:
            changes["billable"] = billable

        if not changes:
            console.print("[yellow]Nothing to update.[/yellow]")
            return
        await session.controller.update(**changes)
        _print_details(session)

    _run(action, config_dir, verbose)


@app.command()
def watch(
    config_dir: Optional[Path] = CONFIG_DIR_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Show a live status line, refreshed on the configured intervals."""

    async def action(session: TimerSession) -> None:
        _require_configured(session)
        with Live(status_line(session.controller, session.cache), console=console) as live:
            session.controller.subscribe(
                lambda: live.update(status_line(session.controller, session.cache))
            )
            while True:
                await asyncio.sleep(1)
                live.update(status_line(session.controller, session.cache))

    _run(action, config_dir, verbose, schedule=True)


# ----------------------------------------------------------------------
# Lookup data
# ----------------------------------------------------------------------
@app.command()
def projects(
    config_dir: Optional[Path] = CONFIG_DIR_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """List active projects."""

    async def action(session: TimerSession) -> None:
        _require_configured(session)
        table = Table(title="Projects")
        table.add_column("Name", style="cyan")
        table.add_column("ID", style="green")
        table.add_column("Billable", style="magenta")
        for item in session.cache.projects:
            table.add_row(item.name, item.id, "Yes" if item.is_billable else "No")
        console.print(table)

    _run(action, config_dir, verbose)


@app.command()
def tasks(
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Only tasks of this project."),
    config_dir: Optional[Path] = CONFIG_DIR_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """List open tasks."""

    async def action(session: TimerSession) -> None:
        _require_configured(session)
        if project:
            items = session.cache.tasks_for_project(_resolve_project(session.cache, project).id)
        else:
            items = session.cache.tasks
        table = Table(title="Tasks")
        table.add_column("Name", style="cyan")
        table.add_column("Project", style="magenta")
        table.add_column("ID", style="green")
        for item in items:
            parent = session.cache.project(item.project_id)
            table.add_row(item.name, parent.name if parent else item.project_id, item.id)
        console.print(table)

    _run(action, config_dir, verbose)


@app.command("tags")
def list_tags(
    config_dir: Optional[Path] = CONFIG_DIR_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """List tags."""

    async def action(session: TimerSession) -> None:
        _require_configured(session)
        table = Table(title="Tags")
        table.add_column("Name", style="cyan")
        table.add_column("ID", style="green")
        for tag in session.cache.tags:
            table.add_row(tag.name, tag.id)
        console.print(table)

    _run(action, config_dir, verbose)


@app.command("tag-create")
def tag_create(
    name: str = typer.Argument(..., help="Name of the new tag."),
    config_dir: Optional[Path] = CONFIG_DIR_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Create a tag."""

    async def action(session: TimerSession) -> None:
        _require_configured(session)
        tag = await session.cache.create_tag(session.config.settings.selected_organization_id, name)
        console.print(f"[green]✓ Created tag {tag.name} ({tag.id})[/green]")

    _run(action, config_dir, verbose)


@app.command()
def refresh(
    config_dir: Optional[Path] = CONFIG_DIR_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Refresh projects, tasks and tags."""

    async def action(session: TimerSession) -> None:
        _require_configured(session)
        if not await session.refresh_data():
            console.print("[red]✗ Could not refresh SolidTime data. See the log for details.[/red]")
            raise typer.Exit(code=1)
        cache = session.cache
        console.print(
            f"SolidTime data refreshed: {len(cache.projects)} projects, "
            f"{len(cache.tasks)} tasks, {len(cache.tags)} tags."
        )

    _run(action, config_dir, verbose)


@app.command()
def logout(
    config_dir: Optional[Path] = CONFIG_DIR_OPTION,
) -> None:
    """Forget the stored API key and organization."""
    config = Config(config_dir)
    if not Confirm.ask("Remove the stored API key and organization?", default=False):
        raise typer.Exit(code=0)
    config.update(api_key="", selected_organization_id="", selected_member_id="")
    console.print("[green]✓ Credentials removed[/green]")


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"SolidTime Timer v{__version__}")


def main() -> None:
    """Main entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        console.print(f"[red]Unexpected error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
