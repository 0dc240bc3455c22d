"""Pytest configuration: global fixtures.

The environment is fixed before any app module is imported: local-only,
in-memory storage, so no test touches ./data.
"""
import os

os.environ["STORE_BACKEND"] = "local"
os.environ["LOCAL_STORE_PATH"] = ""
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

import pytest  # noqa: E402

from models.settings import AppSettings, NodeType, Provider, ProviderProtocol  # noqa: E402
from services.storage import LocalStore, StorageAdapter  # noqa: E402


class FakeBridge:
    """Records calls; returns a canned result or raises a canned exception."""

    def __init__(self, result: dict | None = None, exc: Exception | None = None, on_call=None):
        self.result = result if result is not None else {"success": True}
        self.exc = exc
        self.on_call = on_call
        self.calls: list[tuple[str, dict]] = []

    async def invoke(self, command: str, params: dict) -> dict:
        self.calls.append((command, params))
        if self.on_call is not None:
            self.on_call()
        if self.exc is not None:
            raise self.exc
        return self.result


async def _no_backend():
    return None


@pytest.fixture
def fake_bridge() -> FakeBridge:
    return FakeBridge()


@pytest.fixture
def local_storage() -> StorageAdapter:
    """Adapter with no durable backend and an in-memory local tier."""
    return StorageAdapter(backend_factory=_no_backend, local=LocalStore(None))


@pytest.fixture
def openai_settings() -> AppSettings:
    return AppSettings(
        providers=[
            Provider(id="p1", protocol=ProviderProtocol.OPENAI, base_url="https://x/", api_key="k"),
        ],
        node_providers={NodeType.LLM_CONTENT: "p1"},
    )


@pytest.fixture
def google_settings() -> AppSettings:
    return AppSettings(
        providers=[
            Provider(
                id="g1", name="Gemini", protocol=ProviderProtocol.GOOGLE,
                base_url="https://generativelanguage.googleapis.com/", api_key="AIza-secret-key",
            ),
        ],
        node_providers={
            NodeType.IMAGE_GENERATOR_PRO: "g1",
            NodeType.IMAGE_GENERATOR_FAST: "g1",
            NodeType.LLM: "g1",
        },
    )
