import asyncio
import os
import sys
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

# -----------------------------------------------------------
# 加入專案根目錄到 sys.path
# 這樣才 import 得到 core / domains
# -----------------------------------------------------------
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))


# -----------------------------------------------------------
# Import 所有 Model，SQLModel.metadata 才會有每一張表
# -----------------------------------------------------------
from sqlmodel import SQLModel  # noqa: E402

import domains.models  # noqa: E402, F401
from core.config import get_settings  # noqa: E402

target_metadata = SQLModel.metadata

config = context.config

# -----------------------------------------------------------
# 覆蓋 sqlalchemy.url
# 用 Settings 裡的 DATABASE_URL，而不是 ini 裡的死字串
# -----------------------------------------------------------
config.set_main_option("sqlalchemy.url", get_settings().DATABASE_URL)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata)

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    # asyncpg driver，所以 engine 也要 async
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
