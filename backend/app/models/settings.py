"""App settings: providers, node → provider mapping, theme.

Serialized as one JSON value under the "settings" store key.
Field names are camelCase on the wire (apiKey, baseUrl, nodeProviders).
"""
import enum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class ProviderProtocol(str, enum.Enum):
    GOOGLE = "google"
    OPENAI = "openai"
    CLAUDE = "claude"


class NodeType(str, enum.Enum):
    IMAGE_GENERATOR_PRO = "imageGeneratorPro"
    IMAGE_GENERATOR_FAST = "imageGeneratorFast"
    VIDEO_GENERATOR = "videoGenerator"
    LLM = "llm"                  # PPT content generation
    LLM_CONTENT = "llmContent"   # free-form LLM content


IMAGE_NODE_TYPES = (NodeType.IMAGE_GENERATOR_PRO, NodeType.IMAGE_GENERATOR_FAST)
TEXT_NODE_TYPES = (NodeType.LLM, NodeType.LLM_CONTENT)
VIDEO_NODE_TYPES = (NodeType.VIDEO_GENERATOR,)


class Theme(str, enum.Enum):
    LIGHT = "light"
    DARK = "dark"
    SYSTEM = "system"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Provider(CamelModel):
    id: str
    name: str = ""
    api_key: str = ""
    base_url: str = ""
    protocol: ProviderProtocol = ProviderProtocol.GOOGLE

    @field_validator("protocol", mode="before")
    @classmethod
    def _unknown_protocol_is_google(cls, value):
        # Older settings blobs have no protocol, or one we no longer know
        try:
            return ProviderProtocol(value)
        except ValueError:
            return ProviderProtocol.GOOGLE

    @property
    def is_usable(self) -> bool:
        return bool(self.api_key) and bool(self.base_url)


class AppSettings(CamelModel):
    providers: list[Provider] = Field(default_factory=list)
    node_providers: dict[NodeType, str] = Field(default_factory=dict)
    theme: Theme = Theme.LIGHT

    @field_validator("node_providers", mode="before")
    @classmethod
    def _drop_unknown_node_types(cls, value):
        if not isinstance(value, dict):
            return {}
        known = {n.value for n in NodeType}
        cleaned = {}
        for key, provider_id in value.items():
            key = key.value if isinstance(key, NodeType) else key
            if key in known and provider_id:
                cleaned[key] = provider_id
        return cleaned

    def provider_by_id(self, provider_id: str) -> Provider | None:
        for provider in self.providers:
            if provider.id == provider_id:
                return provider
        return None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)
