import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from neuronnook.utils.logger import get_logger

logger = get_logger("database")


class Base(DeclarativeBase):
    pass


class Database:
    """
    Process-wide connection handle.

    The engine is created on first use. Concurrent first callers wait on the lock
    and then reuse the engine the winner created.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None
        self._lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._sessionmaker is not None

    async def get_sessionmaker(self) -> async_sessionmaker[AsyncSession]:
        if self._sessionmaker is not None:
            return self._sessionmaker

        async with self._lock:
            if self._sessionmaker is None:
                logger.info("Creating database engine")
                connect_args = {"check_same_thread": False} if self.url.startswith("sqlite") else {}
                engine = create_async_engine(self.url, echo=self.echo, connect_args=connect_args)
                try:
                    async with engine.begin() as conn:
                        await conn.run_sync(Base.metadata.create_all)
                except Exception:
                    logger.exception("Database connection failed")
                    await engine.dispose()
                    raise
                self._engine = engine
                self._sessionmaker = async_sessionmaker(
                    bind=engine,
                    class_=AsyncSession,
                    expire_on_commit=False
                )
                logger.info("Database connected")
        return self._sessionmaker

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        factory = await self.get_sessionmaker()
        async with factory() as session:
            yield session

    async def ping(self) -> None:
        async with self.session() as session:
            await session.execute(text("SELECT 1"))

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None


def get_database(request: Request) -> Database:
    return request.app.state.database
