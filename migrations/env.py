"""Alembic environment for the Tool Intake schema.

The database URL comes from ``-x database_url=...`` when given, otherwise
from the service settings (``DATABASE_URL`` / ``.env``).
"""

import os
import sys
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from toolbox_intake.config import get_settings  # noqa: E402
from toolbox_intake.db import audit_models, models  # noqa: E402,F401
from toolbox_intake.db.base import Base, get_database_url  # noqa: E402

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def resolve_url() -> str:
    override = context.get_x_argument(as_dictionary=True).get("database_url")
    return get_database_url(override or get_settings().database_url)


def _configure_options(url: str) -> dict:
    # ALTER TABLE on SQLite needs batch mode.
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": url.startswith("sqlite"),
    }


def run_offline(url: str) -> None:
    """Emit SQL to stdout without connecting."""
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_options(url),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_online(url: str) -> None:
    engine = create_engine(url, poolclass=pool.NullPool)
    try:
        with engine.connect() as connection:
            context.configure(connection=connection, **_configure_options(url))
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


database_url = resolve_url()
if context.is_offline_mode():
    run_offline(database_url)
else:
    run_online(database_url)
