"""SolidTime API client."""

import logging
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from solidtime_timer.errors import (
    ConfigurationError,
    InvalidRequestError,
    MalformedResponseError,
    SolidTimeError,
)
from solidtime_timer.solidtime.models import (
    CurrentUser,
    DataEnvelope,
    Member,
    Membership,
    Project,
    Tag,
    TagStoreRequest,
    Task,
    TimeEntry,
    TimeEntryStartPayload,
    TimeEntryUpdatePayload,
)
from solidtime_timer.solidtime.pagination import Paginator
from solidtime_timer.solidtime.transport import SolidTimeTransport
from solidtime_timer.utils.notifications import ERROR_DURATION

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class SolidTimeClient:
    """Client for the SolidTime API."""

    def __init__(self, transport: SolidTimeTransport, paginator: Paginator | None = None) -> None:
        """Initialize SolidTime client.

        Args:
            transport: Authenticated transport.
            paginator: Paginator for list endpoints. Built on ``transport``
                when omitted.
        """
        self.transport = transport
        self.paginator = paginator or Paginator(transport)

    def _fail(self, error: SolidTimeError) -> SolidTimeError:
        self.transport.notifier.notify(str(error), ERROR_DURATION)
        return error

    def _unwrap(self, body: Any, model: type[ModelT], endpoint: str) -> ModelT:
        """Validate a ``{"data": ...}`` envelope.

        Raises:
            MalformedResponseError: If the envelope or the resource is invalid.
        """
        try:
            return DataEnvelope[model].model_validate(body).data
        except ValidationError as e:
            logger.error(f"Unexpected response shape from {endpoint}: {e}")
            raise self._fail(
                MalformedResponseError(f"SolidTime did not return the expected data for {endpoint}.")
            ) from e

    def _parse_items(self, items: list[dict[str, Any]], model: type[ModelT]) -> list[ModelT]:
        return [model.model_validate(item) for item in items]

    def _require(self, value: str | None, message: str) -> None:
        if not value:
            raise self._fail(ConfigurationError(message))

    # ------------------------------------------------------------------
    # User & membership
    # ------------------------------------------------------------------
    async def get_current_user(self) -> CurrentUser:
        """Get the authenticated user.

        Returns:
            Current user.

        Raises:
            MalformedResponseError: If the response lacks ``data``.
        """
        body = await self.transport.request("GET", "/v1/users/me")
        return self._unwrap(body, CurrentUser, "/v1/users/me")

    async def get_memberships(self) -> list[Membership]:
        """List the organizations the current user belongs to.

        Returns:
            Personal memberships, possibly empty.
        """
        body = await self.transport.request("GET", "/v1/users/me/memberships")
        if not isinstance(body, dict) or not body.get("data"):
            return []
        return self._parse_items(body["data"], Membership)

    async def get_members(self, org_id: str) -> list[Member]:
        """List all members of an organization.

        Best effort: any failure is logged and yields an empty list.

        Args:
            org_id: Organization ID.

        Returns:
            Members, possibly empty.
        """
        if not org_id:
            return []
        try:
            items = await self.paginator.fetch_all(f"/v1/organizations/{org_id}/members")
            return self._parse_items(items, Member)
        except (SolidTimeError, ValidationError) as e:
            logger.error(f"Failed to fetch members for organization {org_id}: {e}")
            return []

    # ------------------------------------------------------------------
    # Time entries
    # ------------------------------------------------------------------
    async def get_active_time_entry(self) -> TimeEntry | None:
        """Get the current user's running time entry.

        A 404 is how the service says "no active entry"; it maps to None.

        Returns:
            Active time entry or None.
        """
        body = await self.transport.request(
            "GET",
            "/v1/users/me/time-entries/active",
            allow_statuses=(404,),
        )
        if body is None:
            return None
        return self._unwrap(body, TimeEntry, "/v1/users/me/time-entries/active")

    async def start_time_entry(self, org_id: str, payload: TimeEntryStartPayload) -> TimeEntry:
        """Create a running time entry.

        Args:
            org_id: Organization ID.
            payload: Start payload.

        Returns:
            Created time entry.

        Raises:
            ConfigurationError: If org_id or the member id is missing.
        """
        self._require(org_id, "Organization ID is required to start a time entry.")
        self._require(payload.member_id, "Member ID is required to start a time entry.")

        endpoint = f"/v1/organizations/{org_id}/time-entries"
        body = await self.transport.request("POST", endpoint, json=payload.to_api_dict())
        return self._unwrap(body, TimeEntry, endpoint)

    async def stop_time_entry(
        self,
        org_id: str,
        entry_id: str,
        payload: TimeEntryUpdatePayload,
    ) -> TimeEntry:
        """Replace a time entry's mutable fields (PUT).

        Used both to stop the entry (payload carries ``end``) and to update a
        running one (payload without ``end``). ``start`` is never sent.

        Args:
            org_id: Organization ID.
            entry_id: Time entry ID.
            payload: Full replacement payload.

        Returns:
            Updated time entry as stored by the service.

        Raises:
            ConfigurationError: If org_id, entry_id or the member id is missing.
        """
        self._require(org_id, "Organization ID is required to update a time entry.")
        self._require(entry_id, "Time entry ID is required to update a time entry.")
        self._require(payload.member_id, "Member ID is required to update a time entry.")

        endpoint = f"/v1/organizations/{org_id}/time-entries/{entry_id}"
        body = await self.transport.request("PUT", endpoint, json=payload.to_api_dict())
        return self._unwrap(body, TimeEntry, endpoint)

    update_time_entry = stop_time_entry

    # ------------------------------------------------------------------
    # Projects, tasks, tags
    # ------------------------------------------------------------------
    async def get_projects(self, org_id: str) -> list[Project]:
        """List non-archived projects.

        Args:
            org_id: Organization ID.

        Returns:
            Projects in server order.
        """
        if not org_id:
            return []
        items = await self.paginator.fetch_all(
            f"/v1/organizations/{org_id}/projects",
            params={"archived": "false"},
        )
        return self._parse_items(items, Project)

    async def get_tasks(self, org_id: str, project_id: str | None = None) -> list[Task]:
        """List tasks that are not done.

        Args:
            org_id: Organization ID.
            project_id: Only tasks of this project, when given.

        Returns:
            Tasks in server order.
        """
        if not org_id:
            return []
        params = {"done": "false"}
        if project_id:
            params["project_id"] = project_id
        items = await self.paginator.fetch_all(
            f"/v1/organizations/{org_id}/tasks",
            params=params,
        )
        return self._parse_items(items, Task)

    async def get_tags(self, org_id: str) -> list[Tag]:
        """List tags.

        The endpoint is not paginated in practice; should it ever answer with
        a ``links.next``, the remaining pages are followed.

        Args:
            org_id: Organization ID.

        Returns:
            Tags in server order.
        """
        if not org_id:
            return []
        endpoint = f"/v1/organizations/{org_id}/tags"
        body = await self.transport.request("GET", endpoint)
        if isinstance(body, dict) and isinstance(body.get("links"), dict) and body["links"].get("next"):
            logger.debug(f"{endpoint} returned a paginated envelope")
            items = await self.paginator.fetch_all(endpoint, first_page=body)
        elif isinstance(body, dict) and isinstance(body.get("data"), list):
            items = body["data"]
        else:
            logger.warning(f"Unexpected response shape from {endpoint}; no tags loaded")
            items = []
        return self._parse_items(items, Tag)

    async def create_tag(self, org_id: str, name: str) -> Tag:
        """Create a tag.

        Args:
            org_id: Organization ID.
            name: Tag name.

        Returns:
            Created tag.

        Raises:
            ConfigurationError: If org_id is missing.
            InvalidRequestError: If name is empty.
        """
        self._require(org_id, "Organization ID is required to create a tag.")
        if not name or not name.strip():
            raise self._fail(InvalidRequestError("Tag name cannot be empty."))

        endpoint = f"/v1/organizations/{org_id}/tags"
        payload = TagStoreRequest(name=name.strip())
        body = await self.transport.request("POST", endpoint, json=payload.model_dump())
        return self._unwrap(body, Tag, endpoint)

    async def aclose(self) -> None:
        """Close the underlying transport."""
        await self.transport.aclose()

    async def __aenter__(self) -> "SolidTimeClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.aclose()
