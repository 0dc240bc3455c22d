"""Tiered storage: single-flight init, fallback, DB round trip."""
import asyncio
import json

import pytest

from services.storage import DatabaseStore, LocalStore, StorageAdapter


class MemoryBackend:
    def __init__(self):
        self.data: dict[str, str] = {}
        self.closed = False

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value):
        self.data[key] = value

    async def remove(self, key):
        self.data.pop(key, None)

    async def close(self):
        self.closed = True


class BrokenBackend(MemoryBackend):
    async def get(self, key):
        raise RuntimeError("disk I/O error")

    async def set(self, key, value):
        raise RuntimeError("disk I/O error")

    async def remove(self, key):
        raise RuntimeError("disk I/O error")


class BrokenLocalStore(LocalStore):
    def get_item(self, key):
        raise OSError("quota exceeded")

    def set_item(self, key, value):
        raise OSError("quota exceeded")

    def remove_item(self, key):
        raise OSError("quota exceeded")


class TestSingleFlightInit:

    @pytest.mark.asyncio
    async def test_concurrent_first_access_opens_backend_once(self):
        opened = []
        backend = MemoryBackend()

        async def factory():
            opened.append(1)
            await asyncio.sleep(0.01)
            return backend

        adapter = StorageAdapter(backend_factory=factory, local=LocalStore(None))
        calls = []
        for i in range(10):
            calls.append(adapter.set(f"k{i}", f"v{i}"))
            calls.append(adapter.get(f"other{i}"))
        results = await asyncio.gather(*calls)

        assert len(opened) == 1
        assert results[0::2] == [True] * 10
        assert results[1::2] == [None] * 10
        assert adapter.durable is True
        assert [await adapter.get(f"k{i}") for i in range(10)] == [f"v{i}" for i in range(10)]
        assert backend.data["k3"] == "v3"

    @pytest.mark.asyncio
    async def test_handle_is_cached_for_later_calls(self):
        opened = []

        async def factory():
            opened.append(1)
            return MemoryBackend()

        adapter = StorageAdapter(backend_factory=factory, local=LocalStore(None))
        await adapter.set("a", "1")
        await adapter.get("a")
        await adapter.remove("a")

        assert len(opened) == 1

    @pytest.mark.asyncio
    async def test_failed_open_is_not_retried(self):
        opened = []

        async def factory():
            opened.append(1)
            raise ConnectionError("no native context")

        adapter = StorageAdapter(backend_factory=factory, local=LocalStore(None))
        await asyncio.gather(adapter.get("a"), adapter.get("b"))
        await adapter.set("a", "1")

        assert len(opened) == 1
        assert adapter.durable is False


class TestFallback:

    @pytest.mark.asyncio
    async def test_unavailable_backend_routes_to_local(self):
        async def factory():
            raise ConnectionError("no native context")

        local = LocalStore(None)
        adapter = StorageAdapter(backend_factory=factory, local=local)

        assert await adapter.set("settings", '{"theme":"dark"}') is True
        assert await adapter.get("settings") == '{"theme":"dark"}'
        assert local.get_item("settings") == '{"theme":"dark"}'

        assert await adapter.remove("settings") is True
        assert await adapter.get("settings") is None

    @pytest.mark.asyncio
    async def test_failing_operation_retries_once_on_local(self):
        async def factory():
            return BrokenBackend()

        local = LocalStore(None)
        local.set_item("settings", "from-local")
        adapter = StorageAdapter(backend_factory=factory, local=local)

        assert await adapter.get("settings") == "from-local"
        assert await adapter.set("custom-models", "{}") is True
        assert local.get_item("custom-models") == "{}"
        assert await adapter.remove("settings") is True
        assert local.get_item("settings") is None

    @pytest.mark.asyncio
    async def test_both_tiers_failing_degrades_without_raising(self):
        async def factory():
            return BrokenBackend()

        adapter = StorageAdapter(backend_factory=factory, local=BrokenLocalStore(None))

        assert await adapter.get("settings") is None
        assert await adapter.set("settings", "{}") is False
        assert await adapter.remove("settings") is False

    @pytest.mark.asyncio
    async def test_healthy_backend_does_not_touch_local(self):
        backend = MemoryBackend()

        async def factory():
            return backend

        local = LocalStore(None)
        adapter = StorageAdapter(backend_factory=factory, local=local)
        await adapter.set("settings", "v")

        assert backend.data == {"settings": "v"}
        assert local.get_item("settings") is None

    @pytest.mark.asyncio
    async def test_close_closes_opened_backend(self):
        backend = MemoryBackend()

        async def factory():
            return backend

        adapter = StorageAdapter(backend_factory=factory, local=LocalStore(None))
        await adapter.close()  # never opened: no-op
        assert backend.closed is False

        await adapter.get("x")
        await adapter.close()
        assert backend.closed is True


class TestLocalStore:

    def test_persists_to_json_file(self, tmp_path):
        path = tmp_path / "local-storage.json"
        store = LocalStore(path)
        store.set_item("settings", '{"theme":"light"}')

        reopened = LocalStore(path)
        assert reopened.get_item("settings") == '{"theme":"light"}'
        assert json.loads(path.read_text(encoding="utf-8")) == {"settings": '{"theme":"light"}'}

    def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "local-storage.json"
        path.write_text("{not json", encoding="utf-8")

        assert LocalStore(path).get_item("settings") is None

    def test_remove_missing_key_is_noop(self):
        store = LocalStore(None)
        store.remove_item("nothing")
        assert store.get_item("nothing") is None


class TestDatabaseStore:

    @pytest.mark.asyncio
    async def test_round_trip_on_sqlite(self, tmp_path):
        url = f"sqlite+aiosqlite:///{tmp_path}/data/app-data.db"
        store = await DatabaseStore.open(url)
        try:
            assert await store.get("settings") is None

            await store.set("settings", "v1")
            await store.set("settings", "v2")
            assert await store.get("settings") == "v2"

            await store.remove("settings")
            assert await store.get("settings") is None
        finally:
            await store.close()

        assert (tmp_path / "data" / "app-data.db").exists()

    @pytest.mark.asyncio
    async def test_adapter_over_database_store(self, tmp_path):
        url = f"sqlite+aiosqlite:///{tmp_path}/app-data.db"

        async def factory():
            return await DatabaseStore.open(url)

        adapter = StorageAdapter(backend_factory=factory, local=LocalStore(None))
        try:
            assert await adapter.set("custom-models", '{"llmContent":["gpt-4o"]}') is True
            assert await adapter.get("custom-models") == '{"llmContent":["gpt-4o"]}'
            assert adapter.durable is True
            assert adapter.local.get_item("custom-models") is None
        finally:
            await adapter.close()
