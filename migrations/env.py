"""Alembic migration environment for the installer schema.

The database URL is resolved like the application resolves it (``.env``,
process environment, then ``config.toml``) and converted to a sync driver.
"""

import pathlib
from logging.config import fileConfig

from alembic import context
from dotenv import load_dotenv
from sqlalchemy import create_engine

# Local overrides win over the shared .env
_ROOT = pathlib.Path(__file__).resolve().parents[1]
load_dotenv(dotenv_path=_ROOT / ".env")
load_dotenv(dotenv_path=_ROOT / ".env.local", override=True)

from Recipeweaver import models  # noqa: E402,F401
from Recipeweaver.config import load_settings  # noqa: E402
from Recipeweaver.db import Base  # noqa: E402

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)
target_metadata = Base.metadata


def _sync_db_url() -> str:
    """Sync driver URL: psycopg for Postgres, pysqlite for SQLite."""
    url = load_settings().database_url
    if url.startswith("postgresql+") or url.startswith("postgresql://"):
        base = url.replace("+asyncpg", "").replace("+psycopg", "")
        return "postgresql+psycopg://" + base.split("://", 1)[1]
    return url.replace("+aiosqlite", "")


def run_migrations_offline() -> None:
    context.configure(url=_sync_db_url(), target_metadata=target_metadata, literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = create_engine(_sync_db_url())
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
