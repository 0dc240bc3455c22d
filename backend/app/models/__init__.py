from models.base import Base, make_engine
from models.store_entry import StoreEntry
from models.settings import (
    AppSettings,
    NodeType,
    Provider,
    ProviderProtocol,
    Theme,
)
from models.generation import (
    ErrorDetails,
    GenerationRequest,
    GenerationResponse,
    ImageEditParams,
    ImageGenerationParams,
    InputFile,
    TextGenerationParams,
    VideoGenerationParams,
)

__all__ = [
    "Base",
    "make_engine",
    "StoreEntry",
    "AppSettings",
    "NodeType",
    "Provider",
    "ProviderProtocol",
    "Theme",
    "ErrorDetails",
    "GenerationRequest",
    "GenerationResponse",
    "ImageEditParams",
    "ImageGenerationParams",
    "InputFile",
    "TextGenerationParams",
    "VideoGenerationParams",
]
