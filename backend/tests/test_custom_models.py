import json

import pytest

from services.custom_models import CUSTOM_MODELS_KEY, CustomModelStore, UnknownCategoryError


class TestCustomModelStore:

    @pytest.mark.asyncio
    async def test_add_trims_dedups_and_keeps_order(self, local_storage):
        store = CustomModelStore(local_storage)
        await store.load()

        assert await store.add("llmContent", "  gpt-4o ") is True
        assert await store.add("llmContent", "claude-sonnet-4") is True
        assert await store.add("llmContent", "gpt-4o") is False
        assert await store.add("llmContent", "   ") is False

        assert store.list("llmContent") == ["gpt-4o", "claude-sonnet-4"]
        assert store.has("llmContent", "gpt-4o")
        assert not store.has("pptImage", "gpt-4o")

    @pytest.mark.asyncio
    async def test_remove(self, local_storage):
        store = CustomModelStore(local_storage)
        await store.add("pptOutline", "a")
        await store.add("pptOutline", "b")

        assert await store.remove("pptOutline", "a") is True
        assert await store.remove("pptOutline", "a") is False
        assert store.list("pptOutline") == ["b"]

    @pytest.mark.asyncio
    async def test_remove_and_has_match_trimmed_names(self, local_storage):
        store = CustomModelStore(local_storage)
        await store.add("llmContent", " gpt-x ")

        assert store.has("llmContent", " gpt-x ")
        assert await store.remove("llmContent", " gpt-x ") is True
        assert store.list("llmContent") == []

    @pytest.mark.asyncio
    async def test_persisted_layout_and_reload(self, local_storage):
        store = CustomModelStore(local_storage)
        await store.add("imageGenerator", "flux-pro")

        persisted = json.loads(await local_storage.get(CUSTOM_MODELS_KEY))
        assert persisted["imageGenerator"] == ["flux-pro"]

        reloaded = CustomModelStore(local_storage)
        await reloaded.load()
        assert reloaded.list("imageGenerator") == ["flux-pro"]

    @pytest.mark.asyncio
    async def test_load_drops_duplicates_and_unknown_categories(self, local_storage):
        await local_storage.set(CUSTOM_MODELS_KEY, json.dumps({
            "videoGenerator": ["veo", "veo", " sora "],
            "somethingElse": ["x"],
        }))
        store = CustomModelStore(local_storage)
        models = await store.load()

        assert models["videoGenerator"] == ["veo", "sora"]
        assert "somethingElse" not in models

    @pytest.mark.asyncio
    async def test_load_skips_categories_that_are_not_lists(self, local_storage):
        await local_storage.set(CUSTOM_MODELS_KEY, json.dumps({
            "llmContent": "gpt-4o",
            "pptOutline": 42,
            "pptImage": ["flux"],
        }))
        store = CustomModelStore(local_storage)
        models = await store.load()

        assert models["llmContent"] == []
        assert models["pptOutline"] == []
        assert models["pptImage"] == ["flux"]

    def test_unknown_category(self, local_storage):
        store = CustomModelStore(local_storage)
        with pytest.raises(UnknownCategoryError):
            store.list("audioGenerator")
