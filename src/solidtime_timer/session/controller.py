"""Active timer state machine.

The controller is the only owner of the locally cached active time entry.
Everything else reads it through :attr:`TimerController.active_entry` and
changes it through :meth:`start`, :meth:`stop`, :meth:`update` and
:meth:`refresh`.

Ordering rules:

* A refresh takes a sequence number when it is issued, a write outcome takes
  one when it is received. An outcome is applied only if its number is newer
  than the last applied one, so a refresh issued before a write completed can
  never overwrite the write's result, whatever order the responses arrive in.
* Writes are serialized through one lock; each write reads the cached entry
  as its merge base only after it holds the lock.
* Stop clears the local entry before the request is sent. If the request
  fails the true remote state is unknown, so the state is re-read from the
  service instead of restoring the previous entry.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from solidtime_timer.config import Config
from solidtime_timer.errors import (
    AuthenticationError,
    ConfigurationError,
    IntegrityError,
    InvalidRequestError,
    SolidTimeError,
    TimerStateError,
)
from solidtime_timer.session.cache import DataCache
from solidtime_timer.session.members import MemberResolver
from solidtime_timer.solidtime.client import SolidTimeClient
from solidtime_timer.solidtime.models import (
    TimeEntry,
    TimeEntryStartPayload,
    TimeEntryUpdatePayload,
)
from solidtime_timer.utils.notifications import ERROR_DURATION, Notifier
from solidtime_timer.utils.timeutils import format_wire_timestamp

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({"description", "project_id", "task_id", "tag_ids", "billable"})

Observer = Callable[[], None]


class TimerStatus(str, Enum):
    """What the controller last observed."""

    UNCONFIGURED = "unconfigured"
    IDLE = "idle"
    RUNNING = "running"
    AUTH_ERROR = "auth_error"
    ERROR = "error"


class TimerController:
    """Single source of truth for the active time entry."""

    def __init__(
        self,
        client: SolidTimeClient,
        config: Config,
        cache: DataCache,
        resolver: MemberResolver,
        notifier: Notifier,
    ) -> None:
        """Initialize timer controller.

        Args:
            client: SolidTime API client.
            config: Configuration (credentials, organization, member id).
            cache: Lookup data cache, also holds the current user.
            resolver: Member id resolver used before every write.
            notifier: User-facing notification channel.
        """
        self.client = client
        self.config = config
        self.cache = cache
        self.resolver = resolver
        self.notifier = notifier

        self._active: TimeEntry | None = None
        self._status = TimerStatus.UNCONFIGURED if not config.is_configured else TimerStatus.IDLE
        self._issued_seq = 0
        self._applied_seq = 0
        self._in_flight = 0
        self._write_lock = asyncio.Lock()
        self._observers: list[Observer] = []

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------
    @property
    def active_entry(self) -> TimeEntry | None:
        return self._active

    @property
    def status(self) -> TimerStatus:
        return self._status

    @property
    def is_running(self) -> bool:
        return self._active is not None

    @property
    def is_busy(self) -> bool:
        """True while a start/stop/update/refresh request is in flight."""
        return self._in_flight > 0

    def elapsed(self, now: datetime | None = None) -> timedelta | None:
        """Elapsed time of the active entry, derived from its start.

        Returns:
            Elapsed time, or None when no timer is running.
        """
        if self._active is None:
            return None
        return self._active.elapsed(now)

    def subscribe(self, observer: Observer) -> None:
        """Call ``observer`` after every state transition."""
        if observer not in self._observers:
            self._observers.append(observer)

    def unsubscribe(self, observer: Observer) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def _notify_observers(self) -> None:
        for observer in list(self._observers):
            try:
                observer()
            except Exception:
                logger.exception("Active entry observer failed")

    # ------------------------------------------------------------------
    # State mutation
    # ------------------------------------------------------------------
    def _next_seq(self) -> int:
        self._issued_seq += 1
        return self._issued_seq

    def _apply(self, seq: int, entry: TimeEntry | None, status: TimerStatus | None = None) -> bool:
        """Replace local state with the outcome of operation ``seq``.

        Returns:
            False if a newer outcome was already applied and this one was
            discarded.
        """
        if seq <= self._applied_seq:
            logger.debug(f"Discarding outcome of operation {seq}; {self._applied_seq} already applied")
            return False

        if entry is not None and not entry.is_running:
            entry = None
        if status is None:
            status = TimerStatus.RUNNING if entry is not None else TimerStatus.IDLE

        self._applied_seq = seq
        self._active = entry
        self._status = status
        logger.debug(f"Applied operation {seq}: status={status.value} entry={entry.id if entry else None}")
        self._notify_observers()
        return True

    def reset(self) -> None:
        """Forget the active entry, e.g. after settings became invalid."""
        status = TimerStatus.IDLE if self.config.is_configured else TimerStatus.UNCONFIGURED
        self._apply(self._next_seq(), None, status)

    def _fail(self, error: SolidTimeError) -> SolidTimeError:
        self.notifier.notify(str(error), ERROR_DURATION)
        return error

    def _check_configuration(self) -> str:
        """Validate settings needed for writes.

        Returns:
            The selected organization id.
        """
        missing = self.config.missing()
        if missing:
            raise self._fail(ConfigurationError(f"SolidTime {', '.join(missing)} not set."))
        return self.config.settings.selected_organization_id

    async def _check_integrity(self, entry: TimeEntry) -> str:
        """Make sure the cached entry can be written back.

        Returns:
            The entry's organization id.

        Raises:
            IntegrityError: After requesting a refresh, if the entry lacks its
                organization or start.
        """
        if entry.organization_id and entry.start is not None:
            return entry.organization_id
        logger.error(f"Active time entry {entry.id} is missing organization_id or start")
        error = self._fail(
            IntegrityError("Active time entry data is incomplete. Status was refreshed.")
        )
        await self.refresh()
        raise error

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    async def refresh(self) -> TimeEntry | None:
        """Replace local state with the service's active entry.

        Never raises for service failures: a 401/403 moves the controller to
        ``AUTH_ERROR``, other failures to ``ERROR``, and in both cases the
        active entry is dropped.

        Returns:
            The active entry after the refresh, or None.
        """
        try:
            return await self._refresh()
        except SolidTimeError:
            return None

    async def _refresh(self) -> TimeEntry | None:
        if not self.config.settings.has_credentials:
            self._apply(self._next_seq(), None, TimerStatus.UNCONFIGURED)
            return None

        seq = self._next_seq()
        self._in_flight += 1
        try:
            entry = await self.client.get_active_time_entry()
        except AuthenticationError:
            logger.error("Authentication failed while refreshing the active time entry")
            self._apply(seq, None, TimerStatus.AUTH_ERROR)
            raise
        except SolidTimeError as e:
            logger.error(f"Failed to refresh the active time entry: {e}")
            self._apply(seq, None, TimerStatus.ERROR)
            raise
        finally:
            self._in_flight -= 1

        self._apply(seq, entry)
        return self._active

    async def start(
        self,
        description: str | None = None,
        project_id: str | None = None,
        task_id: str | None = None,
        tag_ids: list[str] | None = None,
        billable: bool | None = None,
    ) -> TimeEntry:
        """Start a new timer.

        Args:
            description: Entry description.
            project_id: Project ID.
            task_id: Task ID; must belong to ``project_id``.
            tag_ids: Tag IDs.
            billable: Billable flag. Defaults to the configured default.

        Returns:
            The running entry as created by the service.

        Raises:
            ConfigurationError: If settings are incomplete.
            TimerStateError: If a timer is already running, locally or on the
                service.
            MemberResolutionError: If no member id can be determined.
        """
        async with self._write_lock:
            org_id = self._check_configuration()
            if self._active is not None:
                raise self._fail(TimerStateError("Please stop the current timer first."))

            self._in_flight += 1
            try:
                # The local cache cannot see timers started from another client
                remote = await self._refresh()
                if remote is not None:
                    raise self._fail(
                        TimerStateError("A timer is already running. Please stop it first.")
                    )

                member_id = await self.resolver.resolve(org_id)
                payload = TimeEntryStartPayload(
                    member_id=member_id,
                    start=format_wire_timestamp(),
                    billable=self.config.settings.default_billable if billable is None else billable,
                    project_id=project_id or None,
                    task_id=task_id or None,
                    description=description or None,
                    tags=list(tag_ids) if tag_ids else None,
                )

                try:
                    entry = await self.client.start_time_entry(org_id, payload)
                except SolidTimeError as e:
                    logger.error(f"Failed to start timer: {e}")
                    raise
            finally:
                self._in_flight -= 1

            self._apply(self._next_seq(), entry)
            logger.info(f"Started time entry {entry.id}")
            self.notifier.notify("SolidTime: Timer started!")
            return entry

    async def stop(self) -> TimeEntry:
        """Stop the running timer.

        The local entry is cleared before the request is sent. On failure the
        state is re-read from the service.

        Returns:
            The stopped entry as returned by the service.

        Raises:
            TimerStateError: If no timer is running.
            IntegrityError: If the cached entry is incomplete.
            MemberResolutionError: If no member id can be determined.
        """
        async with self._write_lock:
            entry = self._active
            if entry is None:
                raise self._fail(TimerStateError("No timer is currently running."))
            org_id = await self._check_integrity(entry)

            self._in_flight += 1
            try:
                member_id = await self.resolver.resolve(org_id)
                payload = TimeEntryUpdatePayload(
                    member_id=member_id,
                    end=format_wire_timestamp(),
                    billable=entry.billable,
                    project_id=entry.project_id,
                    task_id=entry.task_id,
                    description=entry.description,
                    tags=list(entry.tags),
                )

                self._apply(self._next_seq(), None, TimerStatus.IDLE)
                try:
                    stopped = await self.client.stop_time_entry(org_id, entry.id, payload)
                except SolidTimeError as e:
                    logger.error(f"Failed to stop time entry {entry.id}: {e}")
                    await self.refresh()
                    self.notifier.notify("SolidTime: Timer status refreshed after failed stop.")
                    raise
            finally:
                self._in_flight -= 1

            # A refresh that raced the stop may have brought the entry back
            if self._active is not None and self._active.id == entry.id:
                self._apply(self._next_seq(), None, TimerStatus.IDLE)

            logger.info(f"Stopped time entry {entry.id}")
            self.notifier.notify("SolidTime: Timer stopped!")
            return stopped

    async def update(self, **changes: Any) -> TimeEntry:
        """Change fields of the running timer.

        Only the keyword arguments passed are changed; every other field is
        taken from the cached entry. Passing ``None`` clears a field, except
        ``billable`` which must be true or false.

        Args:
            **changes: Any of ``description``, ``project_id``, ``task_id``,
                ``tag_ids`` and ``billable``.

        Returns:
            The updated entry as returned by the service.

        Raises:
            InvalidRequestError: If an unknown field is passed or
                ``billable`` is ``None``.
            TimerStateError: If no timer is running.
            IntegrityError: If the cached entry is incomplete.
            MemberResolutionError: If no member id can be determined.
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise self._fail(
                InvalidRequestError(f"Cannot update timer fields: {', '.join(sorted(unknown))}")
            )
        if "billable" in changes and changes["billable"] is None:
            raise self._fail(InvalidRequestError("Billable must be true or false."))

        async with self._write_lock:
            entry = self._active
            if entry is None:
                raise self._fail(TimerStateError("No timer is running to update."))
            org_id = await self._check_integrity(entry)

            self._in_flight += 1
            try:
                member_id = await self.resolver.resolve(org_id)
                base = self._active
                if base is None:
                    raise self._fail(TimerStateError("The timer was stopped meanwhile."))

                project_id = changes.get("project_id", base.project_id)
                task_id = changes.get("task_id", base.task_id)
                if "project_id" in changes and "task_id" not in changes and project_id != base.project_id:
                    # The old task belongs to the old project
                    task_id = None
                tags = changes["tag_ids"] if "tag_ids" in changes else base.tags

                payload = TimeEntryUpdatePayload(
                    member_id=member_id,
                    billable=changes.get("billable", base.billable),
                    project_id=project_id or None,
                    task_id=task_id or None,
                    description=changes.get("description", base.description),
                    tags=list(tags or []),
                )

                try:
                    updated = await self.client.update_time_entry(org_id, base.id, payload)
                except SolidTimeError as e:
                    logger.error(f"Failed to update time entry {base.id}: {e}")
                    await self.refresh()
                    raise
            finally:
                self._in_flight -= 1

            self._apply(self._next_seq(), updated)
            logger.info(f"Updated time entry {updated.id}")
            self.notifier.notify("SolidTime: Timer updated!")
            return updated
