"""
Database handle and session management for the Payment Order API.

Uses SQLAlchemy async engine with aiosqlite for non-blocking DB operations
inside FastAPI. A single Database is constructed at process start (see the
lifespan in main.py), attached to app.state, and closed at shutdown.
"""
import logging
from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from domain.errors import TransientStoreError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""
    pass


class Database:
    """
    Owns the async engine and session factory.

    Lifecycle:
        db = Database(url)
        await db.open()     # creates tables
        ...                 # db.session() per unit of work
        await db.close()    # disposes the engine
    """

    def __init__(self, url: str, **engine_options):
        self.url = url
        self.engine = create_async_engine(url, future=True, **engine_options)
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self) -> None:
        """Create all tables. Called once on server startup."""
        # Import models so Base.metadata knows about them
        import db_models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self._open = True
        logger.info("Database tables created (or already exist)")

    async def close(self) -> None:
        await self.engine.dispose()
        self._open = False
        logger.info("Database engine disposed")

    def session(self) -> AsyncSession:
        return self.session_factory()

    async def ping(self) -> bool:
        """Round-trip a trivial query; used by the health endpoint."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True


def get_database(request: Request) -> Database:
    """FastAPI dependency — the Database attached during the lifespan."""
    return request.app.state.database


def require_open_database(request: Request) -> Database:
    """The attached Database, or 503 when it is missing or already closed."""
    database = get_database(request)
    if database is None or not database.is_open:
        raise TransientStoreError("Order database is not open")
    return database


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency — yields an async session."""
    async with require_open_database(request).session() as session:
        try:
            yield session
        finally:
            await session.close()
