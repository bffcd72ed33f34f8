import os
import tempfile

# Settings are read once at import time, so point them at throwaway storage
# before any project module is imported.
os.environ.setdefault("FINANCE_DATA_DIR", tempfile.mkdtemp(prefix="finance-tests-"))
os.environ.setdefault("FINANCE_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("FINANCE_REDIS_URL", "")
os.environ.setdefault("FINANCE_AUTH_SECRET", "test-secret")

import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from cache import Cache, MemoryCacheStore  # noqa: E402
from database import init_models  # noqa: E402


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_models(eng)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session(engine):
    factory = async_sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    async with factory() as db:
        yield db


@pytest_asyncio.fixture
async def cache():
    store = Cache(MemoryCacheStore())
    yield store
    await store.close()
