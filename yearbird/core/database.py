"""Database configuration for SQLite.

The database only holds the session slots (access token, expiry and granted
scopes) so a browser refresh or a service restart within the token lifetime
does not force a new consent round-trip.

SQLite Configuration Choices:
    - **WAL (Write-Ahead Logging)**: Allows concurrent readers while writing.
      The scheduled cloud write reads the token while a callback may be
      storing a fresh one.

    - **Foreign Keys**: Disabled by default in SQLite; turned on for every
      connection.

    - **check_same_thread=False**: Required for FastAPI/async. The token
      exchange runs in a worker thread and may touch the same connection pool.
"""

from sqlalchemy import event as sa_event
from sqlmodel import SQLModel, create_engine

from yearbird.core.config import settings

connect_args = {"check_same_thread": False}

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=settings.debug,  # Log SQL statements when DEBUG=true
)


@sa_event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Configure SQLite pragmas on each new connection.

    These settings are connection-level, not database-level, so they must
    be set each time a new connection is established from the pool.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_and_tables(bind=None):
    """Create all database tables."""
    SQLModel.metadata.create_all(bind or engine)
