"""SettingsService: the process-wide AppSettings value and its persistence.

Every mutation builds a new AppSettings and swaps it in whole, then writes
the JSON under the "settings" key. Readers (ProviderResolver) only ever see
a complete old or new value.
"""
import json
import logging
import random
import string
import time
from typing import Optional

from pydantic import ValidationError

from models.settings import AppSettings, NodeType, Provider, ProviderProtocol
from services.storage import StorageAdapter

logger = logging.getLogger("creator.settings")

SETTINGS_KEY = "settings"

_BASE36 = string.digits + string.ascii_lowercase

# Provider fields a caller may change; id is fixed at creation
PROVIDER_FIELDS = ("name", "api_key", "base_url", "protocol")


def generate_provider_id() -> str:
    """"<epoch-ms>-<7 base36 chars>", e.g. "1718000000000-k3j9x0a"."""
    suffix = "".join(random.choice(_BASE36) for _ in range(7))
    return f"{int(time.time() * 1000)}-{suffix}"


class SettingsService:

    def __init__(self, storage: StorageAdapter):
        self.storage = storage
        self._settings = AppSettings()

    @property
    def snapshot(self) -> AppSettings:
        return self._settings

    async def load(self) -> AppSettings:
        raw = await self.storage.get(SETTINGS_KEY)
        if raw is None:
            logger.info("No persisted settings, using defaults")
            self._settings = AppSettings()
            return self._settings
        try:
            data = json.loads(raw)
            # Blob written by the desktop app's state persistence
            if isinstance(data, dict) and isinstance(data.get("state"), dict):
                data = data["state"].get("settings", {})
            self._settings = AppSettings.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error("Persisted settings unreadable, using defaults: %s", e)
            self._settings = AppSettings()
        logger.info(
            "Settings loaded: %d providers, %d node mappings",
            len(self._settings.providers), len(self._settings.node_providers),
        )
        return self._settings

    async def _replace(self, new_settings: AppSettings) -> AppSettings:
        self._settings = new_settings
        if not await self.storage.set(SETTINGS_KEY, new_settings.to_json()):
            logger.warning("Settings changed in memory but were not persisted")
        return new_settings

    async def update_settings(self, **fields) -> AppSettings:
        data = self._settings.model_dump()
        data.update(fields)
        return await self._replace(AppSettings.model_validate(data))

    async def reset(self) -> AppSettings:
        logger.info("Settings reset to defaults")
        return await self._replace(AppSettings())

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------
    async def add_provider(
        self,
        name: str,
        api_key: str = "",
        base_url: str = "",
        protocol: ProviderProtocol | str = ProviderProtocol.GOOGLE,
    ) -> str:
        provider = Provider(
            id=generate_provider_id(),
            name=name,
            api_key=api_key,
            base_url=base_url,
            protocol=protocol,
        )
        providers = [*self._settings.providers, provider]
        await self._replace(self._settings.model_copy(update={"providers": providers}))
        logger.info("Provider added: %s (%s)", provider.name, provider.protocol.value)
        return provider.id

    async def update_provider(self, provider_id: str, **fields) -> Optional[Provider]:
        current = self._settings.provider_by_id(provider_id)
        if current is None:
            return None
        unknown = set(fields) - set(PROVIDER_FIELDS)
        if unknown:
            raise ValueError(f"Unknown provider fields: {', '.join(sorted(unknown))}")

        updated = Provider.model_validate({**current.model_dump(), **fields})
        providers = [updated if p.id == provider_id else p for p in self._settings.providers]
        await self._replace(self._settings.model_copy(update={"providers": providers}))
        return updated

    async def remove_provider(self, provider_id: str) -> bool:
        if self._settings.provider_by_id(provider_id) is None:
            return False
        providers = [p for p in self._settings.providers if p.id != provider_id]
        node_providers = {
            node: pid for node, pid in self._settings.node_providers.items()
            if pid != provider_id
        }
        await self._replace(self._settings.model_copy(
            update={"providers": providers, "node_providers": node_providers},
        ))
        logger.info("Provider removed: %s", provider_id)
        return True

    def get_provider(self, provider_id: str) -> Optional[Provider]:
        return self._settings.provider_by_id(provider_id)

    # ------------------------------------------------------------------
    # Node → provider mapping
    # ------------------------------------------------------------------
    async def set_node_provider(self, node_type, provider_id: Optional[str]) -> AppSettings:
        node = NodeType(node_type)
        node_providers = dict(self._settings.node_providers)
        if provider_id:
            node_providers[node] = provider_id
        else:
            node_providers.pop(node, None)
        return await self._replace(
            self._settings.model_copy(update={"node_providers": node_providers}),
        )

    def get_node_provider(self, node_type) -> Optional[Provider]:
        try:
            node = NodeType(node_type)
        except ValueError:
            return None
        provider_id = self._settings.node_providers.get(node)
        if not provider_id:
            return None
        return self._settings.provider_by_id(provider_id)
