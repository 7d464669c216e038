"""SolidTime API integration."""

from solidtime_timer.solidtime.client import SolidTimeClient
from solidtime_timer.solidtime.models import (
    CurrentUser,
    Member,
    Membership,
    Project,
    Tag,
    Task,
    TimeEntry,
    TimeEntryStartPayload,
    TimeEntryUpdatePayload,
)
from solidtime_timer.solidtime.pagination import MAX_ITEMS, Paginator
from solidtime_timer.solidtime.transport import SolidTimeTransport

__all__ = [
    "SolidTimeClient",
    "SolidTimeTransport",
    "Paginator",
    "MAX_ITEMS",
    "CurrentUser",
    "Member",
    "Membership",
    "Project",
    "Tag",
    "Task",
    "TimeEntry",
    "TimeEntryStartPayload",
    "TimeEntryUpdatePayload",
]
