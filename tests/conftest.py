"""
Pytest configuration and fixtures
"""

import pytest
import pytest_asyncio
import httpx
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, List, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from core.database import build_engine, build_session_maker
from ingestion.extractors.openlibrary_client import OpenLibraryClient
from models.base import Base
# Register all tables on Base.metadata
from models import store, catalog  # noqa: F401

# In-memory SQLite shared through a StaticPool
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

UPSTREAM_URL = "https://upstream.test"

# "Now" for clock-driven tests; yesterday (2024-01-09) is the last full day
FIXED_NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine"""
    engine = build_engine(TEST_DATABASE_URL)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with build_session_maker(test_engine)() as session:
        yield session
        await session.rollback()


# ============================================================================
# Upstream fakes
# ============================================================================

class FakeUpstream:
    """
    In-process stand-in for the upstream catalog, served through
    ``httpx.MockTransport``.

    - ``changes[(day, kind)]``: full entry list for one feed, sliced by offset/limit
    - ``records[key]``: record envelope served at ``{key}.json``
    - ``*_failures``: queued responses returned before the real one;
      an int is a status code, an exception instance is raised
    """

    def __init__(self):
        self.changes: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}
        self.records: Dict[str, Dict[str, Any]] = {}
        self.change_failures: Dict[Tuple[str, str], List[Any]] = {}
        self.record_failures: Dict[str, List[Any]] = {}
        self.requests: List[httpx.Request] = []

    def add_records(self, *records: Dict[str, Any]) -> None:
        for record in records:
            self.records[record["key"]] = record

    def set_changes(self, day: str, kind: str, keys: List[str]) -> None:
        """One change entry per key for ``day`` ("YYYY/MM/DD")"""
        self.changes[(day, kind)] = change_entries(keys, kind)

    def change_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.startswith("/recentchanges/")]

    def record_requests(self) -> List[str]:
        """Keys of the record fetches, in request order"""
        return [
            r.url.path[:-len(".json")]
            for r in self.requests
            if not r.url.path.startswith("/recentchanges/")
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.startswith("/recentchanges/"):
            _, _, year, month, day, name = path.split("/")
            feed = (f"{year}/{month}/{day}", name[:-len(".json")])
            failure = self._next_failure(self.change_failures, feed)
            if failure is not None:
                return failure

            offset = int(request.url.params.get("offset", 0))
            limit = int(request.url.params.get("limit", 1000))
            entries = self.changes.get(feed, [])
            return httpx.Response(200, json=entries[offset:offset + limit])

        key = path[:-len(".json")]
        failure = self._next_failure(self.record_failures, key)
        if failure is not None:
            return failure

        if key in self.records:
            return httpx.Response(200, json=self.records[key])
        return httpx.Response(404, json={"error": "notfound", "key": key})

    @staticmethod
    def _next_failure(failures: Dict[Any, List[Any]], target: Any):
        queued = failures.get(target)
        if not queued:
            return None
        failure = queued.pop(0)
        if isinstance(failure, Exception):
            raise failure
        return httpx.Response(failure, text="upstream unavailable")


class SleepRecorder:
    """Drop-in for ``asyncio.sleep`` that records instead of waiting"""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def change_entries(keys: List[str], kind: str = "edit-book") -> List[Dict[str, Any]]:
    return [
        {
            "id": str(i),
            "kind": kind,
            "timestamp": "2024-01-09T10:00:00.000000",
            "comment": "",
            "changes": [{"key": key, "revision": 2}],
        }
        for i, key in enumerate(keys)
    ]


def author_record(key: str, revision: int = 1, name: str = "Test Author") -> Dict[str, Any]:
    return {
        "key": key,
        "type": {"key": "/type/author"},
        "name": name,
        "revision": revision,
        "last_modified": {"type": "/type/datetime", "value": "2024-01-09T10:00:00.000000"},
    }


def work_record(key: str, author_key: str = None, revision: int = 1) -> Dict[str, Any]:
    record = {
        "key": key,
        "type": {"key": "/type/work"},
        "title": "Test Work",
        "revision": revision,
        "last_modified": {"type": "/type/datetime", "value": "2024-01-09T11:00:00.000000"},
    }
    if author_key:
        record["authors"] = [
            {"author": {"key": author_key}, "type": {"key": "/type/author_role"}}
        ]
    return record


def edition_record(
    key: str,
    work_key: str = None,
    revision: int = 1,
    last_modified: str = "2024-01-09T12:00:00.000000"
) -> Dict[str, Any]:
    record = {
        "key": key,
        "type": {"key": "/type/edition"},
        "title": "Test Edition",
        "revision": revision,
        "last_modified": {"type": "/type/datetime", "value": last_modified},
    }
    if work_key:
        record["works"] = [{"key": work_key}]
    return record


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest_asyncio.fixture
async def ol_client(upstream) -> AsyncGenerator[OpenLibraryClient, None]:
    """OpenLibraryClient wired to the fake upstream"""
    transport = httpx.MockTransport(upstream.handler)
    async with httpx.AsyncClient(transport=transport) as http_client:
        async with OpenLibraryClient(
            client=http_client,
            base_url=UPSTREAM_URL,
            user_agent="catalog-mirror-tests/1.0",
            timeout=5
        ) as client:
            yield client


async def seed_queues(store, queues):
    """Write pending key queues straight into the control-state store"""
    for kind, keys in queues.items():
        await store.set(kind.queue_key, list(keys))
