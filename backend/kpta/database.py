import logging
import os
from typing import AsyncGenerator
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from kpta.core.config import settings

logger = logging.getLogger(__name__)

engine = None
async_session_maker = None


def create_engine_for_url(database_url: str) -> AsyncEngine:
    """Create an async engine configured for SQLite or PostgreSQL"""
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
        if ":memory:" in database_url:
            new_engine = create_async_engine(
                database_url,
                poolclass=StaticPool,
                connect_args=connect_args,
                echo=settings.DEBUG
            )
        else:
            new_engine = create_async_engine(database_url, connect_args=connect_args, echo=settings.DEBUG)

        # SQLite needs foreign keys switched on per connection for ON DELETE CASCADE
        @event.listens_for(new_engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return new_engine

    connect_args = {}
    if os.environ.get("AWS_LAMBDA_FUNCTION_NAME"):
        from kpta.core.database_url import create_ssl_context
        connect_args["ssl"] = create_ssl_context()

    return create_async_engine(
        database_url,
        pool_pre_ping=True,
        pool_recycle=300,  # 5 minutes
        echo=settings.DEBUG,
        connect_args=connect_args
    )


async def create_tables(target_engine: AsyncEngine) -> None:
    from kpta.models.base import Base
    from kpta.models import retrospective, insight  # noqa: F401  register tables

    async with target_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db():
    """Initialize database connection and create tables"""
    global engine, async_session_maker

    from kpta.core.database_url import get_database_url
    engine = create_engine_for_url(get_database_url())
    async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await create_tables(engine)


async def close_db():
    """Close database connection"""
    global engine
    if engine:
        await engine.dispose()
        engine = None


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session"""
    from fastapi import HTTPException

    # Startup may have failed (e.g. cold Lambda); retry lazily
    if engine is None or async_session_maker is None:
        try:
            await init_db()
        except Exception as e:
            logger.error(f"Failed to initialize database in get_db: {e}", exc_info=True)
            raise HTTPException(status_code=503, detail="Database connection unavailable")

    async with async_session_maker() as session:
        yield session
