"""Timer session: owns every stateful component for one configured account."""

import logging
from typing import Any

import httpx

from solidtime_timer.config import Config
from solidtime_timer.errors import ConfigurationError, SolidTimeError
from solidtime_timer.session.cache import DataCache
from solidtime_timer.session.controller import TimerController
from solidtime_timer.session.members import MemberResolver, membership_for_organization
from solidtime_timer.session.scheduler import RefreshScheduler
from solidtime_timer.solidtime.client import SolidTimeClient
from solidtime_timer.solidtime.models import Membership
from solidtime_timer.solidtime.transport import SolidTimeTransport
from solidtime_timer.utils.notifications import ERROR_DURATION, ConsoleNotifier, Notifier

logger = logging.getLogger(__name__)


class TimerSession:
    """Composition root for the client, cache, resolver, controller and triggers.

    Usage::

        async with TimerSession(Config()) as session:
            await session.controller.start(description="Writing")
    """

    def __init__(
        self,
        config: Config,
        notifier: Notifier | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Wire up the session. No network access happens here.

        Args:
            config: Configuration store.
            notifier: User-facing notification channel. Defaults to the console.
            http_client: httpx client to use, e.g. one with a mock transport.
        """
        self.config = config
        self.notifier = notifier or ConsoleNotifier()

        settings = config.settings
        self.transport = SolidTimeTransport(
            api_key=settings.api_key,
            base_url=settings.api_base_url,
            notifier=self.notifier,
            client=http_client,
        )
        self.client = SolidTimeClient(self.transport)
        self.cache = DataCache(self.client, self.notifier)
        self.resolver = MemberResolver(self.client, config, self.cache.ensure_user, self.notifier)
        self.controller = TimerController(
            self.client, config, self.cache, self.resolver, self.notifier
        )
        self.scheduler = RefreshScheduler(self.controller.refresh, self.refresh_data)
        self._scheduling = False

    async def initialize(self, schedule: bool = False) -> None:
        """Load the current user, lookup data and the active entry.

        Args:
            schedule: Also arm the periodic refresh triggers.
        """
        self._scheduling = schedule
        await self._load()

    async def _load(self) -> None:
        settings = self.config.settings
        if settings.has_credentials:
            try:
                await self.cache.refresh_user()
            except SolidTimeError as e:
                logger.error(f"Failed to fetch current user: {e}")

        if self.config.is_configured:
            await self.refresh_data()
            await self.controller.refresh()
            if self._scheduling:
                self.scheduler.schedule(
                    settings.status_refresh_interval_seconds,
                    settings.data_refresh_interval_minutes,
                )
        else:
            self.scheduler.cancel()
            self.cache.clear_data()
            self.controller.reset()

    async def refresh_data(self) -> bool:
        """Refresh projects, tasks and tags of the selected organization."""
        return await self.cache.refresh(self.config.settings.selected_organization_id)

    async def apply_settings(self, **changes: Any) -> None:
        """Persist settings changes and bring every component in line.

        Credentials changes refetch the current user. Interval changes re-arm
        the triggers. Incomplete settings clear cached data and the active
        entry.

        Args:
            **changes: Settings fields to change.
        """
        settings = self.config.update(**changes)
        credentials_changed = self.transport.configure(settings.api_key, settings.api_base_url)
        if credentials_changed:
            self.cache.clear()
        await self._load()

    async def memberships(self) -> list[Membership]:
        """Organizations the current user belongs to."""
        return await self.client.get_memberships()

    async def select_organization(self, org_id: str) -> Membership:
        """Select an organization and seed the member id from its membership.

        Args:
            org_id: Organization ID.

        Returns:
            The membership of the current user in that organization.

        Raises:
            ConfigurationError: If the user has no membership there.
        """
        membership = membership_for_organization(await self.memberships(), org_id)
        if membership is None:
            error = ConfigurationError(f"You are not a member of organization {org_id}.")
            self.notifier.notify(str(error), ERROR_DURATION)
            raise error
        self.config.select_organization(membership.organization.id, membership.id)
        await self._load()
        logger.info(f"Selected organization {membership.organization.name} ({org_id})")
        return membership

    async def shutdown(self) -> None:
        """Cancel the triggers and close the HTTP client."""
        self.scheduler.cancel()
        self._scheduling = False
        await self.client.aclose()

    async def __aenter__(self) -> "TimerSession":
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.shutdown()
