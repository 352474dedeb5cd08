from typing import AsyncIterator

from fastapi import Request
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
import logging

logger = logging.getLogger(__name__)

Base = declarative_base()


def create_engine_and_session_factory(database_url: str, echo: bool = False) -> tuple[AsyncEngine, async_sessionmaker]:
    """Builds the async engine and the session factory bound to it."""
    try:
        logger.info(f"Attempting to create engine with URL: {make_url(database_url).render_as_string(hide_password=True)}")
        options = {"echo": echo}
        if not database_url.startswith("sqlite"):
            options["pool_pre_ping"] = True
        engine = create_async_engine(database_url, **options)
        # Use async_sessionmaker for SQLAlchemy 2.0+
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        logger.info("Async database engine and session factory created successfully.")
    except Exception as e:
        logger.error(f"FATAL: Failed to create database engine or session factory: {e}")
        raise RuntimeError(f"Could not initialize database connection: {e}") from e
    return engine, session_factory


async def create_tables(engine: AsyncEngine) -> None:
    # Use Alembic for production migrations; this only fills in missing tables.
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db_session(request: Request) -> AsyncIterator[AsyncSession]:
    """FastAPI dependency to inject DB session."""
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        try:
            yield session
        except Exception as e:
            logger.error(f"Rolling back session due to error: {e}")
            await session.rollback()
            raise
        # No automatic commit/close here, managed by 'async with'
