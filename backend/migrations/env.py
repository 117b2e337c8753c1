from __future__ import annotations
"""Alembic environment for the garage schema.

The database URL comes from ``DATABASE_URL`` (a ``.env`` file is honoured, as
in the app factory) unless ``alembic -x db_url=...`` overrides it for a
one-off run. SQLite needs batch mode for column changes.
"""
from logging.config import fileConfig
import os
import sys

from alembic import context
from dotenv import load_dotenv
from sqlalchemy import engine_from_config, pool

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from garage.models.authz import Base  # noqa: E402
# Each module registers its tables on Base.metadata
from garage.models import audit, worker, repair_order, repair_item  # noqa: E402,F401

load_dotenv()

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def database_url() -> str:
    return context.get_x_argument(as_dictionary=True).get('db_url') or os.getenv('DATABASE_URL', 'sqlite:///dev.db')


def _configure(**kwargs):
    url = database_url()
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        render_as_batch=url.startswith('sqlite'),
        **kwargs,
    )


def run_migrations_offline():
    _configure(url=database_url(), literal_binds=True, dialect_opts={'paramstyle': 'named'})
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    section = config.get_section(config.config_ini_section) or {}
    section['sqlalchemy.url'] = database_url()
    connectable = engine_from_config(section, prefix='sqlalchemy.', poolclass=pool.NullPool)
    with connectable.connect() as connection:
        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
