"""
Alembic environment for the insight engine tables.

Migrations run over a sync driver (DATABASE_URL_SYNC, or DATABASE_URL
without the +asyncpg suffix). Autogenerate only looks at tables declared
in ``core.models``; anything else living in the same database is ignored.
"""

from __future__ import annotations

import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from sqlalchemy import engine_from_config, pool

# ── Add src to python path so models can be imported ─────────────────
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from core.config import settings  # noqa: E402
from core.database import Base  # noqa: E402
import core.models  # noqa: F401, E402

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def sync_url() -> str:
    return settings.database_url_sync or settings.database_url.replace("+asyncpg", "")


config.set_main_option("sqlalchemy.url", sync_url())


def include_name(name, type_, parent_names):
    """Skip tables this project does not own (shared database)."""
    if type_ == "table":
        return name in target_metadata.tables
    return True


def run_migrations_offline() -> None:
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        include_name=include_name,
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            include_name=include_name,
            compare_type=True,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
