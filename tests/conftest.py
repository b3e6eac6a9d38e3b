"""Shared fixtures."""

import typing as t
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from reposcope.context import reset_current_request, set_current_request
from reposcope.repository import RepositorySettings, TaggedCache

from .models import Author, Post, PostRepository


@pytest.fixture
def settings() -> RepositorySettings:
    return RepositorySettings(
        per_page=15,
        max_per_page=100,
        cache_enabled=True,
        cache_skip_param="skipCache",
        cache_minutes=60,
        locale="en",
    )


@pytest.fixture
def cache() -> TaggedCache:
    return TaggedCache(namespace=f"test-{uuid4().hex}:")


@pytest.fixture
def no_request() -> t.Iterator[None]:
    token = set_current_request(None)
    yield
    reset_current_request(token)


@pytest.fixture
def repository(
    settings: RepositorySettings, cache: TaggedCache, no_request: None
) -> PostRepository:
    return PostRepository(settings=settings, cache=cache)


@pytest.fixture
async def engine() -> t.AsyncIterator[AsyncEngine]:
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(engine: AsyncEngine) -> t.AsyncIterator[AsyncSession]:
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture
async def seeded(session: AsyncSession) -> AsyncSession:
    """Two authors and five posts."""
    ann = Author(id=1, name="Ann")
    bob = Author(id=2, name="Bob")
    session.add_all([ann, bob])
    session.add_all(
        [
            Post(id=1, title="Learning SQL", email="a@example.com", age=25,
                 author_id=1, first_name="Bill", last_name="Smith", published=True),
            Post(id=2, title="Async Python", email="b@example.com", age=31,
                 author_id=2, first_name="Jane", last_name="Bill", published=True),
            Post(id=3, title="SQL Joins", email="c@example.com", age=40,
                 author_id=1, first_name="Tom", last_name="Jones", published=False),
            Post(id=4, title="Caching", email="d@example.com", age=18,
                 author_id=None, first_name="Ann", last_name="Lee", published=True),
            Post(id=5, title="Testing", email="e@example.com", age=52,
                 author_id=2, first_name="Sam", last_name="Hill", published=False),
        ]
    )
    await session.commit()
    return session


@pytest.fixture
def post_repository(
    seeded: AsyncSession,
    settings: RepositorySettings,
    cache: TaggedCache,
    no_request: None,
) -> PostRepository:
    return PostRepository(seeded, settings=settings, cache=cache)
