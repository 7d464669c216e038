"""Plain-text rendering of the timer state for the CLI."""

from datetime import datetime

from solidtime_timer.session.cache import DataCache
from solidtime_timer.session.controller import TimerController, TimerStatus
from solidtime_timer.solidtime.models import TimeEntry
from solidtime_timer.utils.timeutils import format_duration

DESCRIPTION_LIMIT = 20
ID_SUFFIX_LENGTH = 6

STATUS_LABELS = {
    TimerStatus.UNCONFIGURED: "SolidTime: Setup needed",
    TimerStatus.IDLE: "SolidTime",
    TimerStatus.AUTH_ERROR: "SolidTime: Auth Error",
    TimerStatus.ERROR: "SolidTime: Error",
}


def _short_id(value: str) -> str:
    return f"...{value[-ID_SUFFIX_LENGTH:]}"


def _truncate(text: str, limit: int = DESCRIPTION_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 2] + "..."


def status_line(controller: TimerController, cache: DataCache, now: datetime | None = None) -> str:
    """One-line summary, e.g. ``● 01:02:03 | Website - Fix header``."""
    entry = controller.active_entry
    if entry is None:
        return STATUS_LABELS.get(controller.status, "SolidTime")

    line = f"● {format_duration(entry.elapsed(now))}"
    project = cache.project(entry.project_id)
    if project:
        line += f" | {project.name}"
    elif entry.project_id:
        line += " | (Project?)"
    if entry.description:
        line += f" - {_truncate(entry.description)}"
    return line


def timer_details(entry: TimeEntry, cache: DataCache, now: datetime | None = None) -> list[tuple[str, str]]:
    """Label/value rows describing a running entry.

    Names come from the cache; unknown ids are shown abbreviated.
    """
    rows = [("Duration", format_duration(entry.elapsed(now)))]

    project = cache.project(entry.project_id)
    if project:
        rows.append(("Project", project.name))
    elif entry.project_id:
        rows.append(("Project", f"(ID: {_short_id(entry.project_id)})"))

    task = cache.task(entry.task_id)
    if task:
        rows.append(("Task", task.name))
    elif entry.task_id:
        rows.append(("Task", f"(ID: {_short_id(entry.task_id)})"))

    if entry.description:
        rows.append(("Description", entry.description))

    tags = cache.tags_for(entry.tags)
    if tags:
        rows.append(("Tags", ", ".join(tag.name for tag in tags)))
    elif entry.tags:
        rows.append(("Tags", "(IDs present, not cached)"))

    rows.append(("Billable", "Yes" if entry.billable else "No"))
    if entry.start is not None:
        rows.append(("Started", entry.start.astimezone().strftime("%Y-%m-%d %H:%M:%S")))
    if entry.organization_id:
        rows.append(("Org ID", _short_id(entry.organization_id)))
    return rows
