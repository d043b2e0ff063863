"""
Alembic environment configuration.

When `tenantscope migrate` / `rollback` drive Alembic, they hand over the
connection (already switched to the tenant's search_path) through
config.attributes['connection'] and the tenant name through
config.attributes['tenant']. Run directly, Alembic connects to
DATABASE_URL as usual.
"""

import logging
import os
from logging.config import fileConfig

from alembic import context
from dotenv import load_dotenv
from sqlalchemy import engine_from_config, pool

from tenantscope.models import Base

# Load environment variables
load_dotenv()

config = context.config

if config.config_file_name is not None and 'connection' not in config.attributes:
    fileConfig(config.config_file_name)

logger = logging.getLogger('alembic.env')

database_url = os.getenv("DATABASE_URL")
if database_url:
    config.set_main_option("sqlalchemy.url", database_url)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Emit SQL to the script output instead of running it."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_on_connection(connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run against the handed-over connection, or a fresh engine."""
    connection = config.attributes.get('connection')
    if connection is not None:
        logger.info(f"Migrating tenant {config.attributes.get('tenant')}")
        run_on_connection(connection)
        return

    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = config.get_main_option("sqlalchemy.url")

    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        run_on_connection(connection)


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
