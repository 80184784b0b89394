"""SQLAlchemy implementation of the session storage adapter."""

import asyncio

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from kaamconnect.infrastructure.storage.models import Base, StorageItemModel

logger = structlog.get_logger()


class SQLAlchemyStorage:
    """Persistent StorageAdapter on any async SQLAlchemy URL.

    Typically a local SQLite file (``sqlite+aiosqlite:///session.db``).
    The table is created on first use.
    """

    def __init__(self, url: str, echo: bool = False) -> None:
        self._engine = create_async_engine(url, echo=echo)
        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        self._schema_ready = False
        self._schema_lock = asyncio.Lock()

    async def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        async with self._schema_lock:
            if self._schema_ready:
                return
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            self._schema_ready = True
            logger.debug("session_storage_ready", url=self._engine.url.render_as_string())

    async def get_item(self, key: str) -> str | None:
        await self._ensure_schema()
        async with self._session_factory() as session:
            model = await session.get(StorageItemModel, key)
            return model.value if model else None

    async def set_item(self, key: str, value: str) -> None:
        await self._ensure_schema()
        async with self._session_factory() as session:
            await session.merge(StorageItemModel(key=key, value=value))
            await session.commit()

    async def remove_item(self, key: str) -> None:
        await self._ensure_schema()
        async with self._session_factory() as session:
            await session.execute(delete(StorageItemModel).where(StorageItemModel.key == key))
            await session.commit()

    async def dispose(self) -> None:
        """Release pooled connections."""
        await self._engine.dispose()
