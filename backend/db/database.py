"""
Database configuration and session management.

SQLite vs PostgreSQL Compatibility Notes:
-----------------------------------------
This module supports both SQLite (development) and PostgreSQL (production).

1. Bulk message inserts use executemany-style INSERT, supported by both drivers.
2. SELECT ... FOR UPDATE on the chat row is honoured by PostgreSQL and
   silently ignored by SQLite (which serializes writers anyway).
3. ForeignKey with ondelete - works on both (SQLite requires PRAGMA foreign_keys=ON)
4. JSON columns use SQLAlchemy's JSON type (TEXT on SQLite, JSON on PostgreSQL).

Limitations:
- SQLite has limited concurrent write support (single writer at a time)
- SQLite does not support connection pooling (connections are cheap anyway)

For production, always use PostgreSQL with proper connection pooling.
"""

import logging

from config import get_settings
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

settings = get_settings()

# Convert URL for async drivers
database_url = settings.DATABASE_URL
if database_url.startswith("postgresql://"):
    database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

is_sqlite = database_url.startswith("sqlite")

engine_kwargs: dict = {
    "echo": False,
}

if not is_sqlite:
    # pool_pre_ping: verify connections before use (stale connections after DB restarts).
    # pool_size + max_overflow bounds concurrent imports hitting the database;
    # keep it below PostgreSQL's max_connections.
    engine_kwargs["pool_pre_ping"] = True
    engine_kwargs["pool_size"] = 5
    engine_kwargs["max_overflow"] = 10

engine = create_async_engine(database_url, **engine_kwargs)

# SQLite does not enforce foreign keys by default - must be enabled per connection
if is_sqlite:

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    pass


async def get_db():
    """
    Dependency that yields a database session.

    Routes and services call db.commit() explicitly; the import pipeline
    relies on that to keep messages and their ImportRecord in one transaction.
    The rollback on exception is kept as a safety net.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db():
    """Create tables that do not exist yet."""
    # Import models so they register with the metadata
    from models import chat, chat_import, message, user  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, checkfirst=True)

    logging.info("Database initialized successfully")
