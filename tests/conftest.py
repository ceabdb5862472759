"""
Pytest fixtures for ClassDesk tests.
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio

from classdesk.database import create_engine_for_url, create_session_maker, init_db
from classdesk.kernel.identity.password import hash_password
from classdesk.kernel.identity.principal import Principal, derive_client_token
from classdesk.kernel.storage.blob import MemoryBlobStore
from classdesk.kernel.store import ChangeFeed, MemoryStore, SqlStore


COURSE_CODE = "CS101"
COURSE_PASSWORD = "open-sesame"


@pytest.fixture
def feed() -> ChangeFeed:
    return ChangeFeed(maxsize=100)


@pytest.fixture
def store(feed: ChangeFeed) -> MemoryStore:
    """In-memory store with the same atomicity contracts as the SQL store."""
    return MemoryStore(feed)


@pytest.fixture
def blobs() -> MemoryBlobStore:
    return MemoryBlobStore()


async def _create_course(store, code: str = COURSE_CODE) -> str:
    await store.insert(
        "courses",
        {
            "code": code,
            "title": "Intro to Programming",
            "time_slot": "Mon 2",
            "room": "A-101",
            # Low cost factor keeps the suite fast
            "password_hash": hash_password(COURSE_PASSWORD, rounds=4),
            "created_by": "sa-alice",
        },
    )
    return code


@pytest_asyncio.fixture
async def course(store: MemoryStore) -> str:
    """A course row; returns its code."""
    return await _create_course(store)


@pytest.fixture
def sa_alice() -> Principal:
    return Principal(user_id="sa-alice", email="alice@example.edu", name="Alice", role="sa")


@pytest.fixture
def sa_bob() -> Principal:
    return Principal(user_id="sa-bob", email="bob@example.edu", name="Bob", role="sa")


@pytest.fixture
def student() -> Principal:
    return Principal(user_id="student-1", email="s1@example.edu", full_name="Sam Student")


@pytest.fixture
def student_token(student: Principal) -> str:
    return derive_client_token(student.user_id, COURSE_CODE)


@pytest_asyncio.fixture
async def sql_store(tmp_path) -> AsyncGenerator[SqlStore, None]:
    """SqlStore on a fresh SQLite file."""
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'classdesk.db'}")
    await init_db(engine)
    yield SqlStore(create_session_maker(engine), ChangeFeed(maxsize=100))
    await engine.dispose()


@pytest_asyncio.fixture
async def sql_course(sql_store: SqlStore) -> str:
    return await _create_course(sql_store)
