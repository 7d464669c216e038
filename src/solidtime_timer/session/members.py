"""Resolution of the organization-scoped member id used for writes.

The service authorizes time entry writes by membership, not by user id. The
membership id is captured when the organization is selected, but membership
can change independently of local configuration, so it is re-derived from the
organization's member list whenever the cached value is missing or belongs to
another organization.
"""

import logging
from collections.abc import Awaitable, Callable

from solidtime_timer.config import Config
from solidtime_timer.errors import MemberResolutionError
from solidtime_timer.solidtime.client import SolidTimeClient
from solidtime_timer.solidtime.models import CurrentUser, Membership
from solidtime_timer.utils.notifications import ERROR_DURATION, Notifier

logger = logging.getLogger(__name__)


def membership_for_organization(memberships: list[Membership], org_id: str) -> Membership | None:
    """Find the personal membership for an organization.

    Args:
        memberships: The user's memberships.
        org_id: Organization ID.

    Returns:
        Matching membership or None.
    """
    for membership in memberships:
        if membership.organization.id == org_id:
            return membership
    return None


class MemberResolver:
    """Maps (current user, organization) to a member id."""

    def __init__(
        self,
        client: SolidTimeClient,
        config: Config,
        current_user: Callable[[], Awaitable[CurrentUser]],
        notifier: Notifier,
    ) -> None:
        """Initialize member resolver.

        Args:
            client: SolidTime API client.
            config: Configuration holding the cached member id.
            current_user: Coroutine function returning the current user,
                fetching it if it is not cached.
            notifier: User-facing notification channel.
        """
        self.client = client
        self.config = config
        self.current_user = current_user
        self.notifier = notifier

    def cached_member_id(self, org_id: str) -> str | None:
        """Member id from configuration, if it applies to ``org_id``."""
        settings = self.config.settings
        if settings.selected_member_id and settings.selected_organization_id == org_id:
            return settings.selected_member_id
        return None

    async def resolve(self, org_id: str) -> str:
        """Get the member id for ``org_id``.

        Args:
            org_id: Organization of the entry being written.

        Returns:
            Member id.

        Raises:
            MemberResolutionError: If the current user is not a member of the
                organization. No write must be attempted in that case.
        """
        cached = self.cached_member_id(org_id)
        if cached:
            return cached
        return await self.rederive(org_id)

    async def rederive(self, org_id: str) -> str:
        """Look up the member id from the organization's member list."""
        user = await self.current_user()
        members = await self.client.get_members(org_id)
        for member in members:
            if member.user_id == user.id:
                logger.info(f"Resolved member {member.id} for user {user.id} in {org_id}")
                if org_id == self.config.settings.selected_organization_id:
                    self.config.set_member_id(member.id)
                return member.id

        logger.error(f"User {user.id} not found among {len(members)} members of {org_id}")
        error = MemberResolutionError(
            f"Your user was not found in organization {org_id}. The time entry was not changed."
        )
        self.notifier.notify(str(error), ERROR_DURATION)
        raise error
