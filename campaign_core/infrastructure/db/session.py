from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from campaign_core.core.config import Settings


@dataclass(slots=True)
class Database:
    """Engine and session factory bound together.

    Created once by the application factory or the worker entrypoint and
    passed down explicitly; nothing here lives at module scope.
    """

    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]

    @classmethod
    def from_url(cls, url: str, **engine_kwargs) -> Database:
        if url.startswith("sqlite"):
            engine_kwargs.setdefault("future", True)
        else:
            engine_kwargs.setdefault("pool_pre_ping", True)
        engine = create_async_engine(url, echo=False, **engine_kwargs)
        session_factory = async_sessionmaker(engine, expire_on_commit=False)
        return cls(engine=engine, session_factory=session_factory)

    @classmethod
    def from_settings(cls, settings: Settings) -> Database:
        return cls.from_url(settings.async_database_url)

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self.session_factory() as session:
            yield session

    async def dispose(self) -> None:
        await self.engine.dispose()
