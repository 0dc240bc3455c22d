import logging
from typing import Callable

from models.settings import AppSettings, NodeType, Provider
from services.generation.errors import ConfigurationError

logger = logging.getLogger("creator.generation.resolver")


class ProviderResolver:
    """node type -> usable Provider, read from the current settings snapshot.

    settings_source is called on every resolve; it must return the whole
    AppSettings value, never a partially updated one.
    """

    def __init__(self, settings_source: Callable[[], AppSettings]):
        self._settings_source = settings_source

    def resolve(self, node_type) -> Provider:
        current = self._settings_source()
        try:
            key = NodeType(node_type)
        except ValueError:
            raise ConfigurationError("no provider assigned")

        provider_id = current.node_providers.get(key)
        if not provider_id:
            raise ConfigurationError("no provider assigned")

        provider = current.provider_by_id(provider_id)
        if provider is None:
            logger.debug("Node %s points at missing provider %s", key.value, provider_id)
            raise ConfigurationError("provider not found")

        if not provider.api_key:
            raise ConfigurationError("api key missing")
        return provider
