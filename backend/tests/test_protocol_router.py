import pytest

from models.settings import ProviderProtocol
from services.generation import router
from services.generation.router import Modality


class TestApiBaseUrl:

    @pytest.mark.parametrize("protocol, expected", [
        ("google", "https://x/v1beta"),
        ("openai", "https://x/v1"),
        ("claude", "https://x/v1"),
        ("something-else", "https://x/v1beta"),
    ])
    def test_strips_every_trailing_slash_then_appends_suffix(self, protocol, expected):
        assert router.api_base_url("https://x///", protocol) == expected

    def test_accepts_enum_members(self):
        assert router.api_base_url("https://x", ProviderProtocol.CLAUDE) == "https://x/v1"


class TestTextBaseUrl:

    def test_google_gets_version_suffix(self):
        assert router.text_base_url("https://x/", "google") == "https://x/v1beta"

    @pytest.mark.parametrize("protocol", ["openai", "claude"])
    def test_openai_and_claude_get_stripped_url_only(self, protocol):
        assert router.text_base_url("https://x/", protocol) == "https://x"


class TestCommandFor:

    @pytest.mark.parametrize("protocol, command", [
        ("google", "gemini_generate_text"),
        ("openai", "openai_chat_completion"),
        ("claude", "claude_chat_completion"),
        ("unknown", "gemini_generate_text"),
    ])
    def test_text_commands(self, protocol, command):
        assert router.command_for(protocol, Modality.TEXT) == command

    @pytest.mark.parametrize("protocol", ["google", "openai", "claude", "unknown"])
    def test_image_always_uses_single_image_command(self, protocol):
        assert router.command_for(protocol, Modality.IMAGE) == "gemini_generate_content"

    @pytest.mark.parametrize("protocol", ["google", "openai", "claude"])
    def test_video_uses_task_command(self, protocol):
        assert router.command_for(protocol, Modality.VIDEO) == "video_create_task"


def test_route_table_covers_every_protocol():
    assert set(router.ROUTES) == set(ProviderProtocol)


def test_default_base_urls():
    assert router.default_base_url("google") == "https://generativelanguage.googleapis.com"
    assert router.default_base_url("nope") == router.default_base_url("google")


def test_request_url_per_command():
    assert router.request_url("gemini_generate_content", "https://g/v1beta", "m") == (
        "https://g/v1beta/models/m:generateContent"
    )
    assert router.request_url("openai_chat_completion", "https://x", "gpt") == (
        "https://x/v1/chat/completions"
    )
    assert router.request_url("claude_chat_completion", "https://c", "c") == "https://c/v1/messages"


def test_video_urls():
    assert router.video_base_url("https://v//") == "https://v"
    assert router.request_url("video_create_task", "https://v", "sora-2") == "https://v/v1/videos"
    assert router.request_url("video_get_status", "https://v", "", task_id="t1") == (
        "https://v/v1/videos/t1"
    )
