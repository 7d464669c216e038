"""Tests for the timer state machine."""

import asyncio
import json
import re
from datetime import timedelta

import pytest

from solidtime_timer.errors import (
    AuthenticationError,
    ConfigurationError,
    IntegrityError,
    InvalidRequestError,
    MemberResolutionError,
    ServiceError,
    TimerStateError,
)
from solidtime_timer.session import TimerSession, TimerStatus
from solidtime_timer.utils import RecordingNotifier
from solidtime_timer.utils.timeutils import parse_wire_timestamp, utc_now

from conftest import MEMBER_ID, ORG_ID, FakeSolidTime

ACTIVE_PATH = "/v1/users/me/time-entries/active"
ENTRIES_PATH = f"/v1/organizations/{ORG_ID}/time-entries"
WIRE_TIMESTAMP = re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z")


async def wait_for_request(fake_service: FakeSolidTime, method: str, path: str) -> None:
    """Yield to the event loop until the fake service has seen the request."""
    for _ in range(100):
        if fake_service.calls(method, path):
            return
        await asyncio.sleep(0)
    raise AssertionError(f"{method} {path} was never requested")


def last_body(fake_service: FakeSolidTime, method: str) -> dict:
    return json.loads(fake_service.calls(method)[-1].content)


@pytest.fixture
def running_service(fake_service: FakeSolidTime) -> FakeSolidTime:
    """Service with entry e1 already running."""
    fake_service.seed_entry(
        description="Docs", project_id="p1", task_id="k1", tags=["t1"], billable=True
    )
    return fake_service


class TestRefresh:
    """Test reconciliation with the service."""

    @pytest.mark.asyncio
    async def test_idle(self, session: TimerSession, notifier: RecordingNotifier) -> None:
        await session.initialize()

        assert session.controller.active_entry is None
        assert session.controller.status == TimerStatus.IDLE
        assert notifier.messages == []

    @pytest.mark.asyncio
    async def test_running(self, session: TimerSession, running_service: FakeSolidTime) -> None:
        await session.initialize()

        assert session.controller.active_entry.id == "e1"
        assert session.controller.status == TimerStatus.RUNNING

    @pytest.mark.asyncio
    async def test_auth_error(
        self, session: TimerSession, running_service: FakeSolidTime, notifier: RecordingNotifier
    ) -> None:
        """Test 401 drops the entry and is distinguishable from other failures."""
        await session.initialize()
        running_service.fail("GET", ACTIVE_PATH, status=401, body={"message": "Unauthenticated."})
        notifier.clear()

        assert await session.controller.refresh() is None

        assert session.controller.active_entry is None
        assert session.controller.status == TimerStatus.AUTH_ERROR
        assert len(notifier.messages) == 1

    @pytest.mark.asyncio
    async def test_service_error(self, session: TimerSession, running_service: FakeSolidTime) -> None:
        await session.initialize()
        running_service.fail("GET", ACTIVE_PATH, status=500)

        await session.controller.refresh()

        assert session.controller.active_entry is None
        assert session.controller.status == TimerStatus.ERROR

    @pytest.mark.asyncio
    async def test_unconfigured(self, config, notifier, http_client, fake_service: FakeSolidTime) -> None:
        """Test no request is made without credentials."""
        session = TimerSession(config, notifier=notifier, http_client=http_client)

        await session.controller.refresh()

        assert session.controller.status == TimerStatus.UNCONFIGURED
        assert fake_service.requests == []

    @pytest.mark.asyncio
    async def test_stale_refresh_discarded_after_update(
        self, session: TimerSession, running_service: FakeSolidTime
    ) -> None:
        """Test a refresh issued before an update completed cannot undo it."""
        await session.initialize()
        stale = dict(running_service.active)
        running_service.fail("GET", ACTIVE_PATH, status=200, body={"data": stale})
        gate = running_service.hold("GET", ACTIVE_PATH)
        running_service.requests.clear()

        refresh = asyncio.create_task(session.controller.refresh())
        await wait_for_request(running_service, "GET", ACTIVE_PATH)
        await session.controller.update(description="New text")
        gate.set()
        await refresh

        assert session.controller.active_entry.description == "New text"

    @pytest.mark.asyncio
    async def test_stale_refresh_discarded_after_stop(
        self, session: TimerSession, running_service: FakeSolidTime
    ) -> None:
        """Test a running entry from an old refresh does not resurrect a stopped timer."""
        await session.initialize()
        stale = dict(running_service.active)
        running_service.fail("GET", ACTIVE_PATH, status=200, body={"data": stale})
        gate = running_service.hold("GET", ACTIVE_PATH)
        running_service.requests.clear()

        refresh = asyncio.create_task(session.controller.refresh())
        await wait_for_request(running_service, "GET", ACTIVE_PATH)
        await session.controller.stop()
        gate.set()
        await refresh

        assert session.controller.active_entry is None
        assert session.controller.status == TimerStatus.IDLE


class TestStart:
    """Test starting a timer."""

    @pytest.mark.asyncio
    async def test_start(
        self, session: TimerSession, fake_service: FakeSolidTime, notifier: RecordingNotifier
    ) -> None:
        """Test the entry is running with the given fields and a current start."""
        await session.initialize()
        invoked = utc_now()

        await session.controller.start(description="Writing docs", project_id="p1", billable=True)

        entry = session.controller.active_entry
        assert session.controller.status == TimerStatus.RUNNING
        assert entry.description == "Writing docs"
        assert entry.project_id == "p1"
        assert entry.billable is True
        assert abs((entry.start - invoked).total_seconds()) <= 1
        assert notifier.texts == ["SolidTime: Timer started!"]

    @pytest.mark.asyncio
    async def test_start_payload(self, session: TimerSession, fake_service: FakeSolidTime) -> None:
        """Test the payload has member id and a wire-format start, and no end."""
        await session.initialize()

        await session.controller.start(tag_ids=["t1"])

        body = last_body(fake_service, "POST")
        assert body["member_id"] == MEMBER_ID
        assert WIRE_TIMESTAMP.fullmatch(body["start"])
        assert abs((parse_wire_timestamp(body["start"]) - utc_now()).total_seconds()) < 2
        assert "end" not in body
        assert body["tags"] == ["t1"]

    @pytest.mark.asyncio
    async def test_default_billable(self, session: TimerSession, fake_service: FakeSolidTime) -> None:
        session.config.update(default_billable=True)
        await session.initialize()

        await session.controller.start()

        assert last_body(fake_service, "POST")["billable"] is True

    @pytest.mark.asyncio
    async def test_start_while_running_locally(
        self, session: TimerSession, running_service: FakeSolidTime, notifier: RecordingNotifier
    ) -> None:
        await session.initialize()

        with pytest.raises(TimerStateError):
            await session.controller.start(description="Second")

        assert running_service.calls("POST") == []
        assert notifier.texts == ["Please stop the current timer first."]

    @pytest.mark.asyncio
    async def test_start_while_running_elsewhere(
        self, session: TimerSession, fake_service: FakeSolidTime
    ) -> None:
        """Test an entry started from another client is adopted, not duplicated."""
        await session.initialize()
        fake_service.seed_entry(description="From phone")

        with pytest.raises(TimerStateError):
            await session.controller.start(description="Second")

        assert fake_service.calls("POST") == []
        assert session.controller.active_entry.description == "From phone"

    @pytest.mark.asyncio
    async def test_start_unconfigured(self, session: TimerSession, fake_service: FakeSolidTime) -> None:
        await session.initialize()
        session.config.update(selected_organization_id="")

        with pytest.raises(ConfigurationError, match="organization not set"):
            await session.controller.start()

        assert fake_service.calls("POST") == []

    @pytest.mark.asyncio
    async def test_start_failure_keeps_idle(
        self, session: TimerSession, fake_service: FakeSolidTime, notifier: RecordingNotifier
    ) -> None:
        """Test a failed start is announced once and leaves the timer idle."""
        await session.initialize()
        fake_service.fail("POST", ENTRIES_PATH, status=422, body={"message": "Invalid"})

        with pytest.raises(ServiceError):
            await session.controller.start()

        assert session.controller.active_entry is None
        assert notifier.texts == ["SolidTime API error: 422 - Invalid"]


class TestStop:
    """Test stopping a timer."""

    @pytest.mark.asyncio
    async def test_stop(
        self, session: TimerSession, running_service: FakeSolidTime, notifier: RecordingNotifier
    ) -> None:
        await session.initialize()

        stopped = await session.controller.stop()

        assert stopped.id == "e1"
        assert stopped.is_running is False
        assert session.controller.status == TimerStatus.IDLE
        assert running_service.active is None
        body = last_body(running_service, "PUT")
        assert "start" not in body
        assert WIRE_TIMESTAMP.fullmatch(body["end"])
        assert body["description"] == "Docs"
        assert body["tags"] == ["t1"]
        assert notifier.texts == ["SolidTime: Timer stopped!"]

    @pytest.mark.asyncio
    async def test_stop_when_idle(self, session: TimerSession, fake_service: FakeSolidTime) -> None:
        await session.initialize()

        with pytest.raises(TimerStateError):
            await session.controller.stop()

        assert fake_service.calls("PUT") == []

    @pytest.mark.asyncio
    async def test_optimistic_stop_then_failure(
        self, session: TimerSession, running_service: FakeSolidTime, notifier: RecordingNotifier
    ) -> None:
        """Test the timer reads idle before the PUT resolves and is restored after it fails."""
        await session.initialize()
        put_path = f"{ENTRIES_PATH}/e1"
        gate = running_service.hold("PUT", put_path)

        stop = asyncio.create_task(session.controller.stop())
        await wait_for_request(running_service, "PUT", put_path)

        assert session.controller.active_entry is None
        assert session.controller.status == TimerStatus.IDLE
        assert session.controller.is_busy is True

        running_service.fail("PUT", put_path, status=500)
        gate.set()
        with pytest.raises(ServiceError):
            await stop

        assert session.controller.active_entry.id == "e1"
        assert session.controller.status == TimerStatus.RUNNING
        assert session.controller.is_busy is False
        assert "SolidTime: Timer status refreshed after failed stop." in notifier.texts

    @pytest.mark.asyncio
    async def test_observer_sees_optimistic_clear(
        self, session: TimerSession, running_service: FakeSolidTime
    ) -> None:
        await session.initialize()
        seen = []
        session.controller.subscribe(lambda: seen.append(session.controller.active_entry))

        await session.controller.stop()

        assert seen[0] is None

    @pytest.mark.asyncio
    async def test_member_id_rederived(
        self, session: TimerSession, running_service: FakeSolidTime
    ) -> None:
        """Test a cleared member id is looked up before the PUT."""
        await session.initialize()
        session.config.update(selected_member_id="")

        await session.controller.stop()

        assert len(running_service.calls("GET", f"/v1/organizations/{ORG_ID}/members")) == 1
        assert last_body(running_service, "PUT")["member_id"] == MEMBER_ID

    @pytest.mark.asyncio
    async def test_member_not_found(
        self, session: TimerSession, running_service: FakeSolidTime
    ) -> None:
        """Test no PUT is sent when the member id cannot be resolved."""
        await session.initialize()
        session.config.update(selected_member_id="")
        running_service.members = []

        with pytest.raises(MemberResolutionError):
            await session.controller.stop()

        assert running_service.calls("PUT") == []
        assert session.controller.active_entry.id == "e1"

    @pytest.mark.asyncio
    async def test_incomplete_entry(self, session: TimerSession, fake_service: FakeSolidTime) -> None:
        """Test an entry without organization is refused and refreshed."""
        fake_service.seed_entry(organization_id=None)
        await session.initialize()
        fake_service.requests.clear()

        with pytest.raises(IntegrityError):
            await session.controller.stop()

        assert fake_service.calls("PUT") == []
        assert len(fake_service.calls("GET", ACTIVE_PATH)) == 1


class TestUpdate:
    """Test updating the running timer."""

    @pytest.mark.asyncio
    async def test_update_tags(
        self, session: TimerSession, running_service: FakeSolidTime, notifier: RecordingNotifier
    ) -> None:
        """Test only the given field changes and the rest comes from the cached entry."""
        await session.initialize()

        await session.controller.update(tag_ids=["t1", "t2"])

        body = last_body(running_service, "PUT")
        assert body["tags"] == ["t1", "t2"]
        assert body["description"] == "Docs"
        assert body["project_id"] == "p1"
        assert body["task_id"] == "k1"
        assert body["billable"] is True
        assert "start" not in body
        assert "end" not in body
        assert session.controller.active_entry.tags == ["t1", "t2"]
        assert notifier.texts == ["SolidTime: Timer updated!"]

    @pytest.mark.asyncio
    async def test_clear_description(self, session: TimerSession, running_service: FakeSolidTime) -> None:
        await session.initialize()

        await session.controller.update(description=None)

        assert last_body(running_service, "PUT")["description"] is None

    @pytest.mark.asyncio
    async def test_project_change_clears_task(
        self, session: TimerSession, running_service: FakeSolidTime
    ) -> None:
        await session.initialize()

        await session.controller.update(project_id="p2")

        body = last_body(running_service, "PUT")
        assert body["project_id"] == "p2"
        assert body["task_id"] is None

    @pytest.mark.asyncio
    async def test_unknown_field(self, session: TimerSession, running_service: FakeSolidTime) -> None:
        await session.initialize()

        with pytest.raises(InvalidRequestError):
            await session.controller.update(start="2024-01-01T00:00:00Z")

        assert running_service.calls("PUT") == []

    @pytest.mark.asyncio
    async def test_billable_cannot_be_cleared(
        self, session: TimerSession, running_service: FakeSolidTime, notifier: RecordingNotifier
    ) -> None:
        """Test a missing billable flag is rejected before any request."""
        await session.initialize()

        with pytest.raises(InvalidRequestError, match="Billable"):
            await session.controller.update(billable=None)

        assert running_service.calls("PUT") == []
        assert notifier.texts == ["Billable must be true or false."]
        assert session.controller.active_entry.billable is True

    @pytest.mark.asyncio
    async def test_update_when_idle(self, session: TimerSession) -> None:
        await session.initialize()

        with pytest.raises(TimerStateError):
            await session.controller.update(description="x")

    @pytest.mark.asyncio
    async def test_update_failure_refreshes(
        self, session: TimerSession, running_service: FakeSolidTime
    ) -> None:
        await session.initialize()
        running_service.fail("PUT", f"{ENTRIES_PATH}/e1", status=500)
        running_service.requests.clear()

        with pytest.raises(ServiceError):
            await session.controller.update(description="x")

        assert len(running_service.calls("GET", ACTIVE_PATH)) == 1
        assert session.controller.active_entry.description == "Docs"


class TestLifecycle:
    """Test the controller across a sequence of operations."""

    @pytest.mark.asyncio
    async def test_local_state_matches_service(
        self, session: TimerSession, fake_service: FakeSolidTime
    ) -> None:
        """Test local state equals the service's active entry after each refresh."""
        controller = session.controller
        await session.initialize()

        async def check() -> None:
            await controller.refresh()
            remote = fake_service.active
            if remote is None:
                assert controller.active_entry is None
            else:
                assert controller.active_entry.id == remote["id"]
                assert controller.active_entry.description == remote["description"]
                assert controller.active_entry.tags == remote["tags"]

        await controller.start(description="One")
        await check()
        await controller.update(description="One, edited", tag_ids=["t3"])
        await check()
        await controller.stop()
        await check()
        await controller.start(description="Two", project_id="p2")
        await check()
        await controller.stop()
        await check()
        assert len(fake_service.entries) == 2

    @pytest.mark.asyncio
    async def test_elapsed(self, session: TimerSession, running_service: FakeSolidTime) -> None:
        await session.initialize()
        entry = session.controller.active_entry

        assert session.controller.elapsed(entry.start + timedelta(minutes=3)) == timedelta(minutes=3)

    @pytest.mark.asyncio
    async def test_elapsed_idle(self, session: TimerSession) -> None:
        await session.initialize()
        assert session.controller.elapsed() is None

    @pytest.mark.asyncio
    async def test_failing_observer_is_isolated(
        self, session: TimerSession, running_service: FakeSolidTime
    ) -> None:
        calls = []

        def broken() -> None:
            raise RuntimeError("observer bug")

        session.controller.subscribe(broken)
        session.controller.subscribe(lambda: calls.append(1))

        await session.initialize()

        assert calls
        assert session.controller.active_entry.id == "e1"

    @pytest.mark.asyncio
    async def test_reset(self, session: TimerSession, running_service: FakeSolidTime) -> None:
        await session.initialize()

        session.controller.reset()

        assert session.controller.active_entry is None
        assert session.controller.status == TimerStatus.IDLE

    @pytest.mark.asyncio
    async def test_auth_error_on_write(
        self, session: TimerSession, running_service: FakeSolidTime, notifier: RecordingNotifier
    ) -> None:
        """Test a 401 on update is announced once and leads to a refresh."""
        await session.initialize()
        running_service.fail("PUT", f"{ENTRIES_PATH}/e1", status=401, body={"message": "Unauthenticated."})

        with pytest.raises(AuthenticationError):
            await session.controller.update(description="x")

        assert notifier.texts.count("SolidTime API error: 401 - Unauthenticated.") == 1
