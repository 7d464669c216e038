"""Pytest configuration and fixtures."""

import asyncio
import json
import re
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import httpx
import pytest

from solidtime_timer.config import API_KEY_ENV, Config
from solidtime_timer.session import TimerSession
from solidtime_timer.solidtime import SolidTimeClient, SolidTimeTransport, TimeEntry
from solidtime_timer.utils import RecordingNotifier, StorageManager

BASE_URL = "https://solidtime.test/api"
API_KEY = "st_test_key_1234567890"
ORG_ID = "org_1"
USER_ID = "user_1"
MEMBER_ID = "member_1"

ORG_PATH = re.compile(
    r"^/v1/organizations/(?P<org>[^/]+)/(?P<resource>members|projects|tasks|tags|time-entries)"
    r"(?:/(?P<item>[^/]+))?$"
)


class FakeSolidTime:
    """In-memory SolidTime service served through ``httpx.MockTransport``.

    Enforces the one-active-entry-per-user rule like the real service.
    ``fail()`` injects an error response for one route and ``hold()`` makes a
    route wait until the returned event is set.
    """

    def __init__(self) -> None:
        self.user = {
            "id": USER_ID,
            "name": "Ada Lovelace",
            "email": "ada@example.com",
            "timezone": "Europe/Vienna",
        }
        self.memberships = [
            {"id": MEMBER_ID, "organization": {"id": ORG_ID, "name": "Acme"}, "role": "owner"}
        ]
        self.members = [
            {"id": "member_0", "user_id": "user_0", "name": "Grace Hopper"},
            {"id": MEMBER_ID, "user_id": USER_ID, "name": "Ada Lovelace"},
        ]
        self.projects = [
            {"id": "p1", "name": "Website", "is_billable": True},
            {"id": "p2", "name": "Internal", "is_billable": False},
        ]
        self.tasks = [
            {"id": "k1", "name": "Design", "project_id": "p1"},
            {"id": "k2", "name": "Meetings", "project_id": "p2"},
        ]
        self.tags = [
            {"id": "t1", "name": "Focus"},
            {"id": "t3", "name": "review"},
        ]
        self.entries: dict[str, dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []
        self.failures: dict[tuple[str, str], tuple[int, Any]] = {}
        self.gates: dict[tuple[str, str], asyncio.Event] = {}
        self._next_id = 0

    # ------------------------------------------------------------------
    # Test controls
    # ------------------------------------------------------------------
    @property
    def active(self) -> dict[str, Any] | None:
        return next((e for e in self.entries.values() if e["end"] is None), None)

    def seed_entry(self, **fields: Any) -> dict[str, Any]:
        """Create a running entry as if started from another client."""
        self._next_id += 1
        entry = {
            "id": f"e{self._next_id}",
            "start": "2024-01-01T09:00:00Z",
            "end": None,
            "duration": None,
            "description": None,
            "project_id": None,
            "task_id": None,
            "organization_id": ORG_ID,
            "user_id": USER_ID,
            "tags": [],
            "billable": False,
        }
        entry.update(fields)
        self.entries[entry["id"]] = entry
        return entry

    def fail(self, method: str, path: str, status: int = 500, body: Any = None) -> None:
        self.failures[(method, path)] = (status, body if body is not None else {"message": "Server Error"})

    def recover(self, method: str, path: str) -> None:
        self.failures.pop((method, path), None)

    def hold(self, method: str, path: str) -> asyncio.Event:
        event = asyncio.Event()
        self.gates[(method, path)] = event
        return event

    def calls(self, method: str, path: str | None = None) -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if r.method == method and (path is None or _api_path(r) == path)
        ]

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------
    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, _api_path(request))
        if key in self.gates:
            await self.gates[key].wait()
        if key in self.failures:
            status, body = self.failures[key]
            if isinstance(body, str):
                return httpx.Response(status, text=body)
            return httpx.Response(status, json=body)
        return self._route(request, *key)

    def _route(self, request: httpx.Request, method: str, path: str) -> httpx.Response:
        if path == "/v1/users/me" and method == "GET":
            return httpx.Response(200, json={"data": self.user})
        if path == "/v1/users/me/memberships" and method == "GET":
            return httpx.Response(200, json={"data": self.memberships})
        if path == "/v1/users/me/time-entries/active" and method == "GET":
            if self.active is None:
                return httpx.Response(404, json={"message": "Not found"})
            return httpx.Response(200, json={"data": self.active})

        match = ORG_PATH.match(path)
        if match is None:
            return httpx.Response(404, json={"message": "Not found"})
        resource, item = match["resource"], match["item"]

        if resource == "time-entries" and method == "POST":
            return self._create_entry(match["org"], json.loads(request.content))
        if resource == "time-entries" and method == "PUT":
            return self._replace_entry(item, json.loads(request.content))
        if resource == "tags" and method == "POST":
            self._next_id += 1
            tag = {"id": f"t{100 + self._next_id}", "name": json.loads(request.content)["name"]}
            self.tags.append(tag)
            return httpx.Response(201, json={"data": tag})
        if resource == "tags" and method == "GET":
            return httpx.Response(200, json={"data": self.tags})
        if method == "GET":
            items = {"members": self.members, "projects": self.projects, "tasks": self.tasks}[resource]
            if resource == "tasks" and request.url.params.get("project_id"):
                items = [t for t in items if t["project_id"] == request.url.params["project_id"]]
            return httpx.Response(200, json={"data": items, "links": {"next": None}, "meta": {}})
        return httpx.Response(405, json={"message": "Method not allowed"})

    def _create_entry(self, org_id: str, body: dict[str, Any]) -> httpx.Response:
        if self.active is not None:
            return httpx.Response(400, json={"message": "Time entry already running"})
        entry = self.seed_entry(
            start=body["start"],
            description=body.get("description"),
            project_id=body.get("project_id"),
            task_id=body.get("task_id"),
            organization_id=org_id,
            tags=body.get("tags") or [],
            billable=body.get("billable", False),
        )
        return httpx.Response(201, json={"data": entry})

    def _replace_entry(self, entry_id: str, body: dict[str, Any]) -> httpx.Response:
        entry = self.entries.get(entry_id)
        if entry is None:
            return httpx.Response(404, json={"message": "Not found"})
        for field in ("description", "project_id", "task_id", "billable", "tags", "end"):
            if field in body:
                entry[field] = body[field]
        return httpx.Response(200, json={"data": entry})


def _api_path(request: httpx.Request) -> str:
    path = request.url.path
    return path[len("/api"):] if path.startswith("/api") else path


@pytest.fixture(autouse=True)
def no_env_api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's real API key out of the tests."""
    monkeypatch.delenv(API_KEY_ENV, raising=False)


@pytest.fixture
def temp_config_dir() -> Path:
    """Create a temporary configuration directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def storage_manager(temp_config_dir: Path) -> StorageManager:
    """Create a storage manager with temporary directory."""
    return StorageManager(temp_config_dir)


@pytest.fixture
def config(temp_config_dir: Path) -> Config:
    """Create an unconfigured config instance with temporary directory."""
    return Config(temp_config_dir)


@pytest.fixture
def configured_config(config: Config) -> Config:
    """Config with credentials, organization and member id set."""
    config.update(
        api_key=API_KEY,
        api_base_url=BASE_URL,
        selected_organization_id=ORG_ID,
        selected_member_id=MEMBER_ID,
    )
    return config


@pytest.fixture
def notifier() -> RecordingNotifier:
    """Notifier that records every notice."""
    return RecordingNotifier()


@pytest.fixture
def fake_service() -> FakeSolidTime:
    """Fresh in-memory SolidTime service."""
    return FakeSolidTime()


@pytest.fixture
def http_client(fake_service: FakeSolidTime) -> httpx.AsyncClient:
    """httpx client routed to the fake service."""
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_service.handler))


@pytest.fixture
def transport(http_client: httpx.AsyncClient, notifier: RecordingNotifier) -> SolidTimeTransport:
    """Transport talking to the fake service."""
    return SolidTimeTransport(API_KEY, BASE_URL, notifier, client=http_client)


@pytest.fixture
def client(transport: SolidTimeTransport) -> SolidTimeClient:
    """Resource client talking to the fake service."""
    return SolidTimeClient(transport)


@pytest.fixture
def session(
    configured_config: Config,
    notifier: RecordingNotifier,
    http_client: httpx.AsyncClient,
) -> TimerSession:
    """Fully wired, not yet initialized session."""
    return TimerSession(configured_config, notifier=notifier, http_client=http_client)


@pytest.fixture
def running_entry() -> TimeEntry:
    """A running time entry started an hour ago."""
    return TimeEntry(
        id="e1",
        start=datetime.now(timezone.utc) - timedelta(hours=1),
        description="Writing docs",
        project_id="p1",
        task_id="k1",
        organization_id=ORG_ID,
        user_id=USER_ID,
        tags=["t1"],
        billable=True,
    )
