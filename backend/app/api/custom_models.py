from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from services.custom_models import MODEL_CATEGORIES, CustomModelStore

router = APIRouter(prefix="/api/custom-models", tags=["custom-models"])


class CustomModelBody(BaseModel):
    model: str


def _store(request: Request, category: str) -> CustomModelStore:
    if category not in MODEL_CATEGORIES:
        raise HTTPException(404, f"Unknown model category: {category}")
    return request.app.state.custom_models


@router.get("")
async def list_all(request: Request):
    return request.app.state.custom_models.all()


@router.get("/{category}")
async def list_category(category: str, request: Request):
    return _store(request, category).list(category)


@router.post("/{category}")
async def add_model(category: str, body: CustomModelBody, request: Request):
    store = _store(request, category)
    added = await store.add(category, body.model)
    return {"success": added, "models": store.list(category)}


@router.delete("/{category}")
async def remove_model(category: str, body: CustomModelBody, request: Request):
    store = _store(request, category)
    removed = await store.remove(category, body.model)
    return {"success": removed, "models": store.list(category)}
