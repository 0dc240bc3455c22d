"""Generation request/response shapes shared by the invoker, bridge and API.

GenerationResponse: what a node gets back (never an exception).
ErrorDetails: diagnostics built once at failure time, frozen afterwards.
"""
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from models.settings import CamelModel

# Prompt echo in diagnostics is capped to this many characters
PROMPT_ECHO_LIMIT = 500

PRO_IMAGE_MODEL = "gemini-3-pro-image-preview"

SUPPORTED_ASPECT_RATIOS = (
    "1:1", "16:9", "9:16", "4:3", "3:4", "3:2", "2:3", "5:4", "4:5", "21:9",
)
SUPPORTED_IMAGE_SIZES = ("1K", "2K", "4K")
MAX_INPUT_IMAGES = 10
SUPPORTED_VIDEO_SECONDS = ("5", "10", "15", "20")


class InputFile(CamelModel):
    data: str                       # base64
    mime_type: str
    file_name: Optional[str] = None


class ImageGenerationParams(CamelModel):
    prompt: str
    model: str
    aspect_ratio: Optional[str] = None
    image_size: Optional[str] = None


class ImageEditParams(ImageGenerationParams):
    input_images: list[str] = Field(default_factory=list)  # base64


class TextGenerationParams(CamelModel):
    prompt: str
    model: str
    system_prompt: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    files: list[InputFile] = Field(default_factory=list)
    response_json_schema: Optional[dict[str, Any]] = None


class VideoGenerationParams(CamelModel):
    prompt: str
    model: str
    seconds: Optional[str] = None
    size: Optional[str] = None          # e.g. "1280x720"
    input_image: Optional[str] = None   # base64 reference frame


class GenerationRequest(CamelModel):
    """Bridge params for one call. Holds the API key: never log it as is."""

    base_url: str
    api_key: str
    model: str = ""
    prompt: str = ""
    input_images: Optional[list[str]] = None
    aspect_ratio: Optional[str] = None
    image_size: Optional[str] = None
    system_prompt: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    files: Optional[list[InputFile]] = None
    response_json_schema: Optional[dict[str, Any]] = None
    seconds: Optional[str] = None
    size: Optional[str] = None
    input_image: Optional[str] = None
    task_id: Optional[str] = None

    def to_bridge_params(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)

    def redacted_body(self) -> dict:
        """Diagnostic echo: truncated prompt, counts instead of payloads, no key."""
        body: dict[str, Any] = {
            "model": self.model,
            "prompt": self.prompt[:PROMPT_ECHO_LIMIT],
        }
        if self.aspect_ratio is not None:
            body["aspectRatio"] = self.aspect_ratio
        if self.image_size is not None:
            body["imageSize"] = self.image_size
        if self.input_images is not None:
            body["hasInputImages"] = bool(self.input_images)
            body["inputImagesCount"] = len(self.input_images)
        if self.system_prompt is not None:
            body["systemPrompt"] = self.system_prompt[:PROMPT_ECHO_LIMIT]
        if self.temperature is not None:
            body["temperature"] = self.temperature
        if self.max_tokens is not None:
            body["maxTokens"] = self.max_tokens
        if self.files:
            body["filesCount"] = len(self.files)
        if self.response_json_schema is not None:
            body["hasResponseJsonSchema"] = True
        if self.seconds is not None:
            body["seconds"] = self.seconds
        if self.size is not None:
            body["size"] = self.size
        if self.input_image is not None:
            body["hasInputImage"] = True
        if self.task_id is not None:
            body["taskId"] = self.task_id
        return body


class ErrorDetails(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True,
    )

    name: str
    message: str
    timestamp: str
    model: str = ""
    provider: str = ""
    request_url: str = ""
    request_body: dict[str, Any] = Field(default_factory=dict)
    status_code: Optional[int] = None
    response_body: Any = None
    stack: Optional[str] = None


class GenerationResponse(CamelModel):
    image_data: Optional[str] = None
    text: Optional[str] = None
    content: Optional[str] = None
    task_id: Optional[str] = None
    status: Optional[str] = None        # queued | in_progress | completed | failed
    progress: Optional[int] = None
    video_data: Optional[str] = None    # base64
    error: Optional[str] = None
    error_details: Optional[ErrorDetails] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
