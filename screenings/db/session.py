from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from screenings.db.base import Base, import_models


class Database:
    """
    Owns the async engine + session factory.

    Constructed once per process and opened/closed explicitly:
      - API: FastAPI lifespan (stored on app.state.db)
      - worker: arq on_startup / on_shutdown
    """

    def __init__(self, url: str, *, echo: bool = False) -> None:
        self.url = url
        self.echo = echo
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database is not connected")
        return self._engine

    async def connect(self) -> None:
        if self._engine is not None:
            return

        if self.url.startswith("sqlite"):
            # One connection per session so concurrent transactions really contend
            engine = create_async_engine(
                self.url,
                echo=self.echo,
                poolclass=NullPool,
                connect_args={"timeout": 30},
            )
        else:
            engine = create_async_engine(
                self.url,
                echo=self.echo,
                pool_pre_ping=True,
                pool_size=5,
                max_overflow=10,
            )

        self._engine = engine
        self._sessionmaker = async_sessionmaker(engine, expire_on_commit=False)

    async def disconnect(self) -> None:
        if self._engine is None:
            return
        engine = self._engine
        self._engine = None
        self._sessionmaker = None
        await engine.dispose()

    async def create_all(self) -> None:
        import_models()
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        import_models()
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        if self._sessionmaker is None:
            raise RuntimeError("Database is not connected")
        async with self._sessionmaker() as session:
            yield session


# FastAPI dependency
async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    database: Database = request.app.state.db
    async with database.session() as session:
        yield session
