"""REST surface through FastAPI's TestClient (lifespan included)."""
import pytest
from fastapi.testclient import TestClient

from conftest import FakeBridge
from main import app


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def test_health(client):
    body = client.get("/api/health").json()
    assert body["status"] == "ok"
    assert body["durable_store"] is False


def test_provider_crud_masks_keys(client):
    created = client.post("/api/providers", json={
        "name": "Relay", "apiKey": "sk-proj-abcdef123456", "baseUrl": "https://x/", "protocol": "openai",
    }).json()
    assert created["success"] is True
    provider_id = created["id"]

    providers = client.get("/api/providers").json()
    assert providers[0]["apiKeyMasked"] == "sk-pro...3456"
    assert "apiKey" not in providers[0]
    assert providers[0]["isConfigured"] is True

    patched = client.patch(f"/api/providers/{provider_id}", json={"name": "Renamed"}).json()
    assert patched["name"] == "Renamed"

    assert client.patch("/api/providers/nope", json={"name": "x"}).status_code == 404
    assert client.delete(f"/api/providers/{provider_id}").json()["success"] is True
    assert client.delete(f"/api/providers/{provider_id}").json()["success"] is False


def test_settings_theme_and_reset(client):
    assert client.put("/api/settings", json={"theme": "dark"}).json()["theme"] == "dark"
    assert client.get("/api/settings").json()["theme"] == "dark"
    assert client.post("/api/settings/reset").json()["theme"] == "light"
    assert client.put("/api/settings", json={"theme": "neon"}).status_code == 422


def test_node_provider_mapping(client):
    provider_id = client.post("/api/providers", json={"name": "G", "apiKey": "k"}).json()["id"]

    body = client.put("/api/node-providers/imageGeneratorPro", json={"providerId": provider_id}).json()
    assert body["nodeProviders"] == {"imageGeneratorPro": provider_id}

    missing = client.put("/api/node-providers/llm", json={"providerId": "ghost"}).json()
    assert missing["success"] is False

    assert client.put("/api/node-providers/notANode", json={}).status_code == 404

    cleared = client.put("/api/node-providers/imageGeneratorPro", json={"providerId": None}).json()
    assert cleared["nodeProviders"] == {}


def test_text_generation_end_to_end(client):
    provider_id = client.post("/api/providers", json={
        "name": "", "apiKey": "k", "baseUrl": "https://x/", "protocol": "openai",
    }).json()["id"]
    client.put("/api/node-providers/llmContent", json={"providerId": provider_id})

    bridge = FakeBridge({"success": False, "error": "API 返回错误 (401)：Invalid key"})
    client.app.state.invoker.bridge = bridge

    body = client.post("/api/generate/text/llmContent", json={"prompt": "hi", "model": "gpt-4o"}).json()

    assert bridge.calls[0][0] == "openai_chat_completion"
    assert bridge.calls[0][1]["baseUrl"] == "https://x"
    assert body["error"] == "API 返回错误 (401)：Invalid key"
    assert body["errorDetails"]["statusCode"] == 401
    assert body["errorDetails"]["responseBody"] == "Invalid key"
    assert body["errorDetails"]["provider"] == provider_id

    metrics = client.get("/api/generate/metrics").json()
    assert metrics["errors"] == {"api": 1}


def test_image_generation_unconfigured(client):
    body = client.post("/api/generate/image/imageGeneratorFast", json={
        "prompt": "a cat", "model": "gemini-2.5-flash-image",
    }).json()
    assert body == {"error": "no provider assigned"}


def test_video_task_create_and_poll(client):
    provider_id = client.post("/api/providers", json={
        "name": "Sora", "apiKey": "sk-v", "baseUrl": "https://v/", "protocol": "openai",
    }).json()["id"]
    client.put("/api/node-providers/videoGenerator", json={"providerId": provider_id})

    bridge = FakeBridge({"success": True, "taskId": "video_1", "status": "queued", "progress": 0})
    client.app.state.invoker.bridge = bridge

    created = client.post("/api/generate/video/videoGenerator", json={
        "prompt": "a fox in snow", "model": "sora-2", "seconds": "5",
    }).json()
    assert created == {"taskId": "video_1", "status": "queued", "progress": 0}

    bridge.result = {"success": True, "taskId": "video_1", "status": "completed", "progress": 100}
    status = client.get("/api/generate/video/videoGenerator/video_1").json()
    assert status["status"] == "completed"

    bridge.result = {"success": True, "taskId": "video_1", "videoData": "bXA0"}
    content = client.get("/api/generate/video/videoGenerator/video_1/content").json()
    assert content == {"taskId": "video_1", "videoData": "bXA0"}

    assert [c[0] for c in bridge.calls] == [
        "video_create_task", "video_get_status", "video_get_content",
    ]
    assert bridge.calls[0][1]["baseUrl"] == "https://v"
    assert client.post("/api/generate/video/llm", json={
        "prompt": "p", "model": "sora-2",
    }).status_code == 400


def test_generation_rejects_wrong_node_kind(client):
    assert client.post("/api/generate/text/imageGeneratorPro", json={
        "prompt": "p", "model": "m",
    }).status_code == 400
    assert client.post("/api/generate/edit/bogus", json={
        "prompt": "p", "model": "m",
    }).status_code == 404


def test_custom_models(client):
    assert client.post("/api/custom-models/llmContent", json={"model": " gpt-4o "}).json() == {
        "success": True, "models": ["gpt-4o"],
    }
    assert client.post("/api/custom-models/llmContent", json={"model": "gpt-4o"}).json()["success"] is False
    assert client.get("/api/custom-models/llmContent").json() == ["gpt-4o"]
    assert client.get("/api/custom-models").json()["pptImage"] == []

    removed = client.request("DELETE", "/api/custom-models/llmContent", json={"model": "gpt-4o"})
    assert removed.json() == {"success": True, "models": []}

    assert client.get("/api/custom-models/audio").status_code == 404


def test_workflow_validate(client):
    ok = client.post("/api/workflow/validate", content='{"nodes": [{"id": "1"}], "edges": []}')
    assert ok.json() == {"success": True, "nodes": 1, "edges": 0}

    bad = client.post("/api/workflow/validate", content='{"nodes": []}')
    assert bad.json()["success"] is False
