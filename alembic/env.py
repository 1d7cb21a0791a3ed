from __future__ import annotations

from logging.config import fileConfig
from typing import Optional

from alembic import context
from sqlalchemy.engine import Connection, Engine

from instawin.db.engine import make_engine
from instawin.models import Base  # noqa: E402,F401 - import populates metadata
from instawin.settings import DB_URL

# this is the Alembic Config object, which provides
# access to the values within the .ini file in use.
config = context.config

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Provide SQLAlchemy metadata for autogeneration support.
target_metadata = Base.metadata

# Ensure Alembic always has a concrete URL to work with.
# Percent signs need to be escaped due to ConfigParser interpolation rules.
config.set_main_option("sqlalchemy.url", DB_URL.replace("%", "%%"))


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""

    context.configure(
        url=DB_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def _engine() -> Engine:
    return make_engine(database_url=DB_URL)


def _run_with_connection(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
        render_as_batch=connection.engine.dialect.name == "sqlite",
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode.

    A connection passed in ``config.attributes["connection"]`` is used as is;
    otherwise one is opened on ``DB_URL``.
    """

    connection: Optional[Connection] = config.attributes.get("connection")
    if connection is not None:
        _run_with_connection(connection)
        return

    with _engine().connect() as connection:
        _run_with_connection(connection)


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
