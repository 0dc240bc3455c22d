"""User-added model names per category, persisted under "custom-models"."""
import json
import logging

from services.storage import StorageAdapter

logger = logging.getLogger("creator.custom_models")

CUSTOM_MODELS_KEY = "custom-models"

MODEL_CATEGORIES = (
    "imageGenerator",
    "videoGenerator",
    "llmContent",
    "pptOutline",
    "pptImage",
)


class UnknownCategoryError(ValueError):
    pass


def _check_category(category: str) -> str:
    if category not in MODEL_CATEGORIES:
        raise UnknownCategoryError(f"Unknown model category: {category}")
    return category


class CustomModelStore:

    def __init__(self, storage: StorageAdapter):
        self.storage = storage
        self._models: dict[str, list[str]] = {c: [] for c in MODEL_CATEGORIES}

    async def load(self) -> dict[str, list[str]]:
        raw = await self.storage.get(CUSTOM_MODELS_KEY)
        models = {c: [] for c in MODEL_CATEGORIES}
        if raw is not None:
            try:
                data = json.loads(raw)
            except json.JSONDecodeError as e:
                logger.error("Persisted custom models unreadable, starting empty: %s", e)
                data = {}
            if isinstance(data, dict) and isinstance(data.get("state"), dict):
                data = data["state"].get("customModels", {})
            if isinstance(data, dict):
                for category in MODEL_CATEGORIES:
                    names = data.get(category)
                    if not isinstance(names, list):
                        continue
                    for name in names:
                        if isinstance(name, str):
                            _append_unique(models[category], name)
        self._models = models
        return self.all()

    def all(self) -> dict[str, list[str]]:
        return {c: list(names) for c, names in self._models.items()}

    def list(self, category: str) -> list[str]:
        return list(self._models[_check_category(category)])

    def has(self, category: str, model: str) -> bool:
        return model.strip() in self._models[_check_category(category)]

    async def add(self, category: str, model: str) -> bool:
        """False when blank or already present."""
        names = self._models[_check_category(category)]
        if not _append_unique(names, model):
            return False
        await self._save()
        logger.info("Custom model added: %s/%s", category, model.strip())
        return True

    async def remove(self, category: str, model: str) -> bool:
        names = self._models[_check_category(category)]
        model = model.strip()
        if model not in names:
            return False
        names.remove(model)
        await self._save()
        return True

    async def _save(self) -> None:
        payload = json.dumps(self._models, ensure_ascii=False)
        if not await self.storage.set(CUSTOM_MODELS_KEY, payload):
            logger.warning("Custom models changed in memory but were not persisted")


def _append_unique(names: list[str], model: str) -> bool:
    trimmed = model.strip()
    if not trimmed or trimmed in names:
        return False
    names.append(trimmed)
    return True
