# tests/conftest.py

import os
from collections.abc import AsyncIterator
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

# Point the app engine at a process-local in-memory database before any
# Recipeweaver module creates one.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("RECIPEWEAVER_SQLITE_STATIC_POOL", "1")

import Recipeweaver.db as _db  # noqa: E402

_db.DATABASE_URL = os.environ["DATABASE_URL"]

from Recipeweaver import models as _models  # noqa: E402,F401
from Recipeweaver.config import Settings  # noqa: E402
from Recipeweaver.db import Base, get_engine, get_sessionmaker  # noqa: E402
from Recipeweaver.metrics import reset_counters  # noqa: E402


@pytest.fixture(autouse=True)
async def _fresh_database() -> AsyncIterator[None]:
    """Every test gets its own in-memory database and engine.

    StaticPool keeps one connection per engine, so disposing the engine drops
    the database with it.
    """
    _db._engine = None
    _db._sessionmaker = None
    _db._schema_initialized = False
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    _db._schema_initialized = True
    reset_counters()
    try:
        yield None
    finally:
        await engine.dispose()
        _db._engine = None
        _db._sessionmaker = None


@pytest.fixture
async def db() -> AsyncIterator[AsyncSession]:
    sm = get_sessionmaker()
    async with sm() as s:
        try:
            yield s
        finally:
            await s.rollback()
            await s.close()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        temp_dir=str(tmp_path / "work"),
        base_url="https://new.example.org/",
        platform_root=str(tmp_path / "platform"),
        logging_enabled=False,
    )
