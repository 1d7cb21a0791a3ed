from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from ..settings import DB_URL, SQLITE_BUSY_TIMEOUT_S


def make_engine(database_url: Optional[str] = None, echo: bool = False):
    url = database_url or DB_URL
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo, future=True)

    engine = create_engine(
        url,
        echo=echo,
        future=True,
        connect_args={"timeout": SQLITE_BUSY_TIMEOUT_S, "check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        # Hand transaction control to SQLAlchemy so BEGIN below is honoured.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        # Take the write lock up front: concurrent plays queue on the busy
        # timeout instead of failing on a shared-to-reserved lock upgrade.
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def get_sessionmaker(engine):
    return sessionmaker(
        bind=engine,
        expire_on_commit=False,
        future=True,
    )
