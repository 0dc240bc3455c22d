"""Settings API: theme, providers, node → provider mapping.

API keys are never returned in full: GET responses carry `apiKeyMasked`.
"""
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import ValidationError

from models.settings import (
    AppSettings,
    CamelModel,
    NodeType,
    Provider,
    ProviderProtocol,
    Theme,
)
from services.settings_store import SettingsService

router = APIRouter(prefix="/api", tags=["settings"])
logger = logging.getLogger("creator.api.settings")


def mask_key(key: str) -> str:
    """Mask API key for safe display: 'sk-proj-abc...xyz4'."""
    if not key:
        return ""
    if len(key) <= 8:
        return key[:2] + "..." + key[-2:]
    return key[:6] + "..." + key[-4:]


def _service(request: Request) -> SettingsService:
    return request.app.state.settings_service


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ProviderInfo(CamelModel):
    id: str
    name: str
    base_url: str
    protocol: ProviderProtocol
    api_key_masked: str
    is_configured: bool


class SettingsResponse(CamelModel):
    providers: list[ProviderInfo]
    node_providers: dict[str, str]
    theme: Theme


class SettingsUpdate(CamelModel):
    theme: Theme


class ProviderCreate(CamelModel):
    name: str
    api_key: str = ""
    base_url: str = ""
    protocol: ProviderProtocol = ProviderProtocol.GOOGLE


class ProviderUpdate(CamelModel):
    name: Optional[str] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    protocol: Optional[ProviderProtocol] = None


class NodeProviderUpdate(CamelModel):
    provider_id: Optional[str] = None


def _provider_info(provider: Provider) -> ProviderInfo:
    return ProviderInfo(
        id=provider.id,
        name=provider.name,
        base_url=provider.base_url,
        protocol=provider.protocol,
        api_key_masked=mask_key(provider.api_key),
        is_configured=provider.is_usable,
    )


def _settings_response(current: AppSettings) -> dict:
    return SettingsResponse(
        providers=[_provider_info(p) for p in current.providers],
        node_providers={node.value: pid for node, pid in current.node_providers.items()},
        theme=current.theme,
    ).model_dump(by_alias=True)


def _node_type(node_type: str) -> NodeType:
    try:
        return NodeType(node_type)
    except ValueError:
        raise HTTPException(404, f"Unknown node type: {node_type}")


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------
@router.get("/settings")
async def get_settings(request: Request):
    return _settings_response(_service(request).snapshot)


@router.put("/settings")
async def update_settings(body: SettingsUpdate, request: Request):
    updated = await _service(request).update_settings(theme=body.theme)
    return _settings_response(updated)


@router.post("/settings/reset")
async def reset_settings(request: Request):
    updated = await _service(request).reset()
    return _settings_response(updated)


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------
@router.get("/providers")
async def list_providers(request: Request):
    providers = _service(request).snapshot.providers
    return [_provider_info(p).model_dump(by_alias=True) for p in providers]


@router.post("/providers")
async def create_provider(body: ProviderCreate, request: Request):
    provider_id = await _service(request).add_provider(
        name=body.name,
        api_key=body.api_key,
        base_url=body.base_url,
        protocol=body.protocol,
    )
    logger.info("Provider %s created (key %s)", provider_id, mask_key(body.api_key))
    return {"success": True, "id": provider_id}


@router.patch("/providers/{provider_id}")
async def patch_provider(provider_id: str, body: ProviderUpdate, request: Request):
    fields = body.model_dump(exclude_none=True)
    try:
        updated = await _service(request).update_provider(provider_id, **fields)
    except ValidationError as e:
        raise HTTPException(422, str(e))
    if updated is None:
        raise HTTPException(404, f"Provider {provider_id} not found")
    return _provider_info(updated).model_dump(by_alias=True)


@router.delete("/providers/{provider_id}")
async def delete_provider(provider_id: str, request: Request):
    removed = await _service(request).remove_provider(provider_id)
    if not removed:
        return {"success": False, "message": f"Provider {provider_id} not found"}
    return {"success": True, "message": f"Provider {provider_id} removed"}


# ---------------------------------------------------------------------------
# Node → provider mapping
# ---------------------------------------------------------------------------
@router.put("/node-providers/{node_type}")
async def set_node_provider(node_type: str, body: NodeProviderUpdate, request: Request):
    node = _node_type(node_type)
    service = _service(request)
    if body.provider_id and service.get_provider(body.provider_id) is None:
        return {"success": False, "message": f"Provider {body.provider_id} not found"}
    updated = await service.set_node_provider(node, body.provider_id)
    return _settings_response(updated)
