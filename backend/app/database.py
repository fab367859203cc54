"""Async database engine and session management."""

from sqlalchemy import event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.config import settings
from app.errors import ConflictError


def _engine_options(url: str) -> dict:
    # SQLite (tests, local dev) does not take the pool sizing arguments
    if url.startswith("sqlite"):
        return {}
    return {"pool_size": 10, "max_overflow": 20, "pool_pre_ping": True}


engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    **_engine_options(settings.database_url),
)

if settings.database_url.startswith("sqlite"):
    # Let SQLAlchemy emit BEGIN itself so SAVEPOINTs (bulk imports) work on SQLite

    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN")


async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""
    pass


async def init_db():
    """Create all tables. In production, use Alembic migrations instead."""
    # Import for side effects: registers tables and save-time hooks on Base.metadata
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db():
    """Drop all tables (test teardown)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def flush_or_conflict(db: AsyncSession, message: str) -> None:
    """Flush pending changes, reporting a unique-key violation as a conflict."""
    try:
        await db.flush()
    except IntegrityError as e:
        raise ConflictError(message) from e


async def get_db() -> AsyncSession:
    """FastAPI dependency — yields an async DB session."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
