"""Tiered key/value storage: durable DB store with a local fallback.

Tiers:
- DatabaseStore: SQLAlchemy async engine, table app_store (durable).
- LocalStore: JSON file namespace, same keys (localStorage counterpart).

StorageAdapter opens the durable store lazily, once. The open is single-flight:
the future is cached before the first await, so concurrent first callers
share it. Any failing durable operation is retried once on the local tier.
Reads never raise (None); writes never raise (False).
"""
from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional, Protocol

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from config import settings
from models.base import Base, make_engine
from models.store_entry import StoreEntry

logger = logging.getLogger("creator.storage")


class KeyValueBackend(Protocol):
    async def get(self, key: str) -> Optional[str]: ...
    async def set(self, key: str, value: str) -> None: ...
    async def remove(self, key: str) -> None: ...
    async def close(self) -> None: ...


# ---------------------------------------------------------------------------
# Durable tier
# ---------------------------------------------------------------------------

class DatabaseStore:
    """Key/value rows in app_store. Raises on any DB error."""

    def __init__(
        self,
        engine: AsyncEngine,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self.engine = engine
        self.session_factory = session_factory

    @classmethod
    async def open(cls, url: str, echo: bool = False) -> "DatabaseStore":
        """Create engine and make sure the table exists."""
        if url.startswith("sqlite") and ":///" in url:
            db_path = url.split(":///", 1)[1]
            if db_path and db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        engine, session_factory = make_engine(url, echo=echo)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Durable store ready: %s", engine.url.render_as_string(hide_password=True))
        return cls(engine, session_factory)

    async def get(self, key: str) -> Optional[str]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(StoreEntry.value).where(StoreEntry.key == key)
            )
            return result.scalar_one_or_none()

    async def set(self, key: str, value: str) -> None:
        async with self.session_factory() as session:
            row = await session.get(StoreEntry, key)
            if row:
                row.value = value
            else:
                session.add(StoreEntry(key=key, value=value))
            await session.commit()

    async def remove(self, key: str) -> None:
        async with self.session_factory() as session:
            await session.execute(delete(StoreEntry).where(StoreEntry.key == key))
            await session.commit()

    async def close(self) -> None:
        await self.engine.dispose()


# ---------------------------------------------------------------------------
# Fallback tier
# ---------------------------------------------------------------------------

class LocalStore:
    """JSON-file key/value namespace. path=None keeps everything in memory."""

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path) if path else None
        self._data: dict[str, str] = self._load()

    def _load(self) -> dict[str, str]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Local store %s unreadable, starting empty: %s", self.path, exc)
            return {}
        if not isinstance(raw, dict):
            return {}
        return {str(k): v for k, v in raw.items() if isinstance(v, str)}

    def _save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as handle:
            json.dump(self._data, handle, ensure_ascii=False, indent=2)
        tmp.replace(self.path)

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value
        self._save()

    def remove_item(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._save()


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------

BackendFactory = Callable[[], Awaitable[Optional[KeyValueBackend]]]


async def open_configured_backend() -> Optional[KeyValueBackend]:
    """Durable backend per settings; None when running local-only."""
    if settings.STORE_BACKEND.lower() != "database":
        logger.info("STORE_BACKEND=%s: using local store only", settings.STORE_BACKEND)
        return None
    return await DatabaseStore.open(settings.DATABASE_URL, echo=settings.DEBUG)


class StorageAdapter:

    def __init__(
        self,
        backend_factory: BackendFactory = open_configured_backend,
        local: LocalStore | None = None,
    ):
        self._backend_factory = backend_factory
        self.local = local if local is not None else LocalStore(settings.LOCAL_STORE_PATH)
        self._backend_future: asyncio.Future | None = None

    async def _backend(self) -> Optional[KeyValueBackend]:
        if self._backend_future is None:
            # Assigned before any await: concurrent callers reuse this future
            self._backend_future = asyncio.ensure_future(self._open_backend())
        return await asyncio.shield(self._backend_future)

    async def _open_backend(self) -> Optional[KeyValueBackend]:
        try:
            return await self._backend_factory()
        except Exception as exc:
            logger.warning("Durable store unavailable, using local store: %s", exc)
            return None

    @property
    def durable(self) -> bool:
        """True once the durable backend has been opened successfully."""
        fut = self._backend_future
        return bool(fut and fut.done() and not fut.cancelled() and fut.result() is not None)

    async def get(self, key: str) -> Optional[str]:
        backend = await self._backend()
        if backend is not None:
            try:
                return await backend.get(key)
            except Exception as exc:
                logger.error("Storage get(%s) failed, trying local store: %s", key, exc)
        try:
            return self.local.get_item(key)
        except Exception as exc:
            logger.error("Local store get(%s) failed: %s", key, exc)
            return None

    async def set(self, key: str, value: str) -> bool:
        backend = await self._backend()
        if backend is not None:
            try:
                await backend.set(key, value)
                return True
            except Exception as exc:
                logger.error("Storage set(%s) failed, trying local store: %s", key, exc)
        try:
            self.local.set_item(key, value)
            return True
        except Exception as exc:
            logger.error("Local store set(%s) failed, value dropped: %s", key, exc)
            return False

    async def remove(self, key: str) -> bool:
        backend = await self._backend()
        if backend is not None:
            try:
                await backend.remove(key)
                return True
            except Exception as exc:
                logger.error("Storage remove(%s) failed, trying local store: %s", key, exc)
        try:
            self.local.remove_item(key)
            return True
        except Exception as exc:
            logger.error("Local store remove(%s) failed: %s", key, exc)
            return False

    async def close(self) -> None:
        if self._backend_future is None or not self._backend_future.done():
            return
        backend = self._backend_future.result()
        if backend is not None:
            await backend.close()
            logger.info("Durable store closed")
