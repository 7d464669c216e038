"""Pydantic models for SolidTime API resources and payloads."""

from datetime import datetime, timedelta
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from solidtime_timer.utils.timeutils import utc_now

T = TypeVar("T")


class CurrentUser(BaseModel):
    """The authenticated user (``/v1/users/me``)."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    email: str
    profile_photo_url: str | None = None
    timezone: str | None = None
    week_start: str | None = None


class MembershipOrganization(BaseModel):
    """Organization descriptor embedded in a personal membership."""

    id: str
    name: str
    currency: str | None = None


class Membership(BaseModel):
    """A personal membership of the current user.

    ``id`` lives in the same id space as :class:`Member` ids, so it can seed
    the member id used for writes in that organization.
    """

    id: str
    organization: MembershipOrganization
    role: str | None = None


class Member(BaseModel):
    """Organization-scoped identity of a user."""

    id: str
    user_id: str
    name: str | None = None
    email: str | None = None
    role: str | None = None
    is_placeholder: bool = False
    billable_rate: int | None = None


class Project(BaseModel):
    """SolidTime project."""

    id: str
    name: str
    color: str | None = None
    client_id: str | None = None
    is_archived: bool = False
    is_billable: bool = False
    billable_rate: int | None = None


class Task(BaseModel):
    """SolidTime task. Always belongs to a project."""

    id: str
    name: str
    is_done: bool = False
    project_id: str


class Tag(BaseModel):
    """SolidTime tag."""

    id: str
    name: str


class TimeEntry(BaseModel):
    """SolidTime time entry. Running while ``end`` is unset."""

    id: str
    start: datetime | None = None
    end: datetime | None = None
    duration: int | None = None
    description: str | None = None
    project_id: str | None = None
    task_id: str | None = None
    organization_id: str | None = None
    user_id: str | None = None
    tags: list[str] = Field(default_factory=list)
    billable: bool = False

    @property
    def is_running(self) -> bool:
        """True while the entry has no end."""
        return self.end is None

    def elapsed(self, now: datetime | None = None) -> timedelta:
        """Time since start, derived on every call.

        Args:
            now: Reference time (aware). Defaults to the current UTC time.

        Returns:
            Elapsed time, zero when the start is unknown.
        """
        if self.start is None:
            return timedelta(0)
        end = self.end or now or utc_now()
        return end - self.start


class TimeEntryStartPayload(BaseModel):
    """Body of ``POST /v1/organizations/{org}/time-entries``."""

    member_id: str
    start: str
    billable: bool = False
    project_id: str | None = None
    task_id: str | None = None
    description: str | None = None
    tags: list[str] | None = None

    def to_api_dict(self) -> dict[str, Any]:
        """Convert to API-compatible dictionary.

        Returns:
            Dictionary for API submission.
        """
        return {
            "member_id": self.member_id,
            "start": self.start,
            "billable": self.billable,
            "project_id": self.project_id,
            "task_id": self.task_id,
            "description": self.description,
            "tags": self.tags or None,
        }


class TimeEntryUpdatePayload(BaseModel):
    """Body of ``PUT /v1/organizations/{org}/time-entries/{id}``.

    The service treats the PUT as a full replacement of the mutable fields, so
    every field is always sent. ``start`` is immutable and deliberately has no
    field here. ``end`` is only sent when stopping.
    """

    member_id: str
    billable: bool = False
    project_id: str | None = None
    task_id: str | None = None
    description: str | None = None
    tags: list[str] = Field(default_factory=list)
    end: str | None = None

    @property
    def is_stop(self) -> bool:
        return self.end is not None

    def to_api_dict(self) -> dict[str, Any]:
        """Convert to API-compatible dictionary.

        Returns:
            Dictionary for API submission.
        """
        payload: dict[str, Any] = {
            "member_id": self.member_id,
            "billable": self.billable,
            "project_id": self.project_id,
            "task_id": self.task_id,
            "description": self.description,
            "tags": list(self.tags),
        }
        if self.end is not None:
            payload["end"] = self.end
        return payload


class TagStoreRequest(BaseModel):
    """Body of ``POST /v1/organizations/{org}/tags``."""

    name: str


class DataEnvelope(BaseModel, Generic[T]):
    """``{"data": ...}`` wrapper used by single-resource endpoints."""

    data: T


class PaginationLinks(BaseModel):
    """``links`` block of a paginated response."""

    first: str | None = None
    last: str | None = None
    prev: str | None = None
    next: str | None = None


class PaginatedEnvelope(BaseModel, Generic[T]):
    """``{"data": [...], "links": {...}, "meta": {...}}`` wrapper."""

    data: list[T]
    links: PaginationLinks = Field(default_factory=PaginationLinks)
    meta: dict[str, Any] = Field(default_factory=dict)
