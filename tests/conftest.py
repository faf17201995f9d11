import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from statussentinel.core.database import Base
from statussentinel.services.history import HistoryStore


@pytest_asyncio.fixture
async def db_engine():
    """In-memory SQLite engine for tests."""
    engine = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def store(session_factory):
    return HistoryStore(session_factory)


@pytest_asyncio.fixture
async def small_store(session_factory):
    """Store with a tiny history capacity for eviction tests."""
    return HistoryStore(session_factory, capacity=3)


@pytest_asyncio.fixture
async def web_service(store):
    return await store.upsert_service("Web Site", "https://example.invalid")


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """File-backed SQLite so concurrent sessions get their own connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'sentinel.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def file_store(file_session_factory):
    return HistoryStore(file_session_factory)
