"""Protocol routing table: base-URL transform + bridge command per modality.

One entry per ProviderProtocol. Unknown protocols fall back to google.
"""
import enum
from dataclasses import dataclass

from models.settings import ProviderProtocol


class Modality(str, enum.Enum):
    IMAGE = "image"
    TEXT = "text"
    VIDEO = "video"


# The bridge has a single image command; text has one per protocol
IMAGE_COMMAND = "gemini_generate_content"

# Video tasks go through the /v1/videos API whatever the protocol
VIDEO_CREATE_COMMAND = "video_create_task"
VIDEO_STATUS_COMMAND = "video_get_status"
VIDEO_CONTENT_COMMAND = "video_get_content"


@dataclass(frozen=True)
class ProtocolRoute:
    suffix: str
    text_command: str
    default_base_url: str
    # openai/claude bridge commands append their own version prefix
    bridge_appends_suffix: bool = False


ROUTES: dict[ProviderProtocol, ProtocolRoute] = {
    ProviderProtocol.GOOGLE: ProtocolRoute(
        suffix="/v1beta",
        text_command="gemini_generate_text",
        default_base_url="https://generativelanguage.googleapis.com",
    ),
    ProviderProtocol.OPENAI: ProtocolRoute(
        suffix="/v1",
        text_command="openai_chat_completion",
        default_base_url="https://api.openai.com",
        bridge_appends_suffix=True,
    ),
    ProviderProtocol.CLAUDE: ProtocolRoute(
        suffix="/v1",
        text_command="claude_chat_completion",
        default_base_url="https://api.anthropic.com",
        bridge_appends_suffix=True,
    ),
}


def route_for(protocol) -> ProtocolRoute:
    try:
        return ROUTES[ProviderProtocol(protocol)]
    except ValueError:
        return ROUTES[ProviderProtocol.GOOGLE]


def _strip(base_url: str) -> str:
    return base_url.rstrip("/")


def api_base_url(base_url: str, protocol) -> str:
    """"https://x///" + google -> "https://x/v1beta"."""
    return _strip(base_url) + route_for(protocol).suffix


def text_base_url(base_url: str, protocol) -> str:
    route = route_for(protocol)
    if route.bridge_appends_suffix:
        return _strip(base_url)
    return _strip(base_url) + route.suffix


def video_base_url(base_url: str) -> str:
    """The video commands append /v1/videos themselves."""
    return _strip(base_url)


def command_for(protocol, modality: Modality) -> str:
    modality = Modality(modality)
    if modality is Modality.IMAGE:
        return IMAGE_COMMAND
    if modality is Modality.VIDEO:
        return VIDEO_CREATE_COMMAND
    return route_for(protocol).text_command


def default_base_url(protocol) -> str:
    return route_for(protocol).default_base_url


# Endpoint each bridge command posts to, for diagnostics
COMMAND_ENDPOINTS = {
    IMAGE_COMMAND: "{base}/models/{model}:generateContent",
    "gemini_generate_text": "{base}/models/{model}:generateContent",
    "openai_chat_completion": "{base}/v1/chat/completions",
    "claude_chat_completion": "{base}/v1/messages",
    VIDEO_CREATE_COMMAND: "{base}/v1/videos",
    VIDEO_STATUS_COMMAND: "{base}/v1/videos/{task_id}",
    VIDEO_CONTENT_COMMAND: "{base}/v1/videos/{task_id}/content",
}


def request_url(command: str, base_url: str, model: str, task_id: str = "") -> str:
    template = COMMAND_ENDPOINTS.get(command, "{base}")
    return template.format(base=base_url, model=model, task_id=task_id)
