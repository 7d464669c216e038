"""Local cache of projects, tasks, tags and the current user."""

import asyncio
import bisect
import logging

from solidtime_timer.errors import DuplicateTagError, SolidTimeError
from solidtime_timer.solidtime.client import SolidTimeClient
from solidtime_timer.solidtime.models import CurrentUser, Project, Tag, Task
from solidtime_timer.utils.notifications import ERROR_DURATION, Notifier

logger = logging.getLogger(__name__)


def _tag_sort_key(tag: Tag) -> str:
    return tag.name.casefold()


class DataCache:
    """Last successful fetch of the organization's lookup data."""

    def __init__(self, client: SolidTimeClient, notifier: Notifier) -> None:
        """Initialize an empty cache.

        Args:
            client: SolidTime API client.
            notifier: User-facing notification channel.
        """
        self.client = client
        self.notifier = notifier
        self.projects: list[Project] = []
        self.tasks: list[Task] = []
        self.tags: list[Tag] = []
        self.current_user: CurrentUser | None = None

    async def refresh(self, org_id: str) -> bool:
        """Replace projects, tasks and tags with a fresh combined fetch.

        All three lists are replaced together. When any fetch fails all three
        are cleared, so a half-updated set is never visible.

        Args:
            org_id: Organization ID.

        Returns:
            True if the data was refreshed.
        """
        if not org_id:
            self.clear_data()
            return False

        results = await asyncio.gather(
            self.client.get_projects(org_id),
            self.client.get_tasks(org_id),
            self.client.get_tags(org_id),
            return_exceptions=True,
        )
        for result in results:
            if not isinstance(result, BaseException):
                continue
            if not isinstance(result, (SolidTimeError, ValueError)):
                raise result
            logger.error(f"Failed to refresh data for organization {org_id}: {result}")
            self.clear_data()
            return False

        projects, tasks, tags = results
        self.projects = projects
        self.tasks = tasks
        self.tags = sorted(tags, key=_tag_sort_key)
        logger.info(
            f"Fetched {len(projects)} projects, {len(tasks)} tasks, {len(tags)} tags"
        )
        return True

    async def refresh_user(self) -> CurrentUser:
        """Refetch the current user.

        Raises:
            SolidTimeError: If the fetch fails; the cached user is dropped.
        """
        try:
            self.current_user = await self.client.get_current_user()
        except SolidTimeError:
            self.current_user = None
            raise
        return self.current_user

    async def ensure_user(self) -> CurrentUser:
        """Cached current user, fetched on first use."""
        if self.current_user is None:
            return await self.refresh_user()
        return self.current_user

    def clear_data(self) -> None:
        """Empty projects, tasks and tags."""
        self.projects = []
        self.tasks = []
        self.tags = []

    def clear(self) -> None:
        """Empty everything, including the current user."""
        self.clear_data()
        self.current_user = None

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------
    def find_tag_by_name(self, name: str) -> Tag | None:
        wanted = name.strip().casefold()
        for tag in self.tags:
            if tag.name.casefold() == wanted:
                return tag
        return None

    def add_tag(self, tag: Tag) -> None:
        """Insert a tag keeping the list sorted by name."""
        if any(existing.id == tag.id for existing in self.tags):
            return
        keys = [_tag_sort_key(existing) for existing in self.tags]
        self.tags.insert(bisect.bisect_right(keys, _tag_sort_key(tag)), tag)

    async def create_tag(self, org_id: str, name: str) -> Tag:
        """Create a tag and add it to the cache.

        Args:
            org_id: Organization ID.
            name: Tag name.

        Returns:
            The created tag.

        Raises:
            DuplicateTagError: If a tag with that name is already cached. No
                request is made.
        """
        if self.find_tag_by_name(name):
            error = DuplicateTagError(f"Tag '{name.strip()}' already exists.")
            self.notifier.notify(str(error), ERROR_DURATION)
            raise error

        tag = await self.client.create_tag(org_id, name)
        self.add_tag(tag)
        logger.info(f"Created tag {tag.name} ({tag.id})")
        return tag

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def project(self, project_id: str | None) -> Project | None:
        if not project_id:
            return None
        return next((p for p in self.projects if p.id == project_id), None)

    def task(self, task_id: str | None) -> Task | None:
        if not task_id:
            return None
        return next((t for t in self.tasks if t.id == task_id), None)

    def tasks_for_project(self, project_id: str | None) -> list[Task]:
        """Tasks selectable once ``project_id`` is chosen."""
        if not project_id:
            return []
        return [t for t in self.tasks if t.project_id == project_id]

    def tags_for(self, tag_ids: list[str]) -> list[Tag]:
        """Cached tags among ``tag_ids``, in cache order."""
        wanted = set(tag_ids)
        return [t for t in self.tags if t.id in wanted]

    def find_project_by_name(self, name: str) -> Project | None:
        wanted = name.strip().casefold()
        return next((p for p in self.projects if p.name.casefold() == wanted), None)

    def find_task_by_name(self, name: str, project_id: str | None = None) -> Task | None:
        wanted = name.strip().casefold()
        candidates = self.tasks_for_project(project_id) if project_id else self.tasks
        return next((t for t in candidates if t.name.casefold() == wanted), None)
