"""Generation API: thin HTTP wrapper over GenerationInvoker.

Failures are part of the response body (`error`, `errorDetails`), not HTTP
status codes: a node needs the diagnostics either way.
"""
from fastapi import APIRouter, HTTPException, Request

from models.generation import (
    ImageEditParams,
    ImageGenerationParams,
    TextGenerationParams,
    VideoGenerationParams,
)
from models.settings import IMAGE_NODE_TYPES, TEXT_NODE_TYPES, VIDEO_NODE_TYPES, NodeType
from services.generation.invoker import GenerationInvoker

router = APIRouter(prefix="/api/generate", tags=["generation"])


def _invoker(request: Request) -> GenerationInvoker:
    return request.app.state.invoker


def _node_type(node_type: str, allowed: tuple[NodeType, ...]) -> NodeType:
    try:
        node = NodeType(node_type)
    except ValueError:
        raise HTTPException(404, f"Unknown node type: {node_type}")
    if node not in allowed:
        raise HTTPException(400, f"Node type {node_type} does not support this operation")
    return node


@router.post("/image/{node_type}")
async def generate_image(node_type: str, params: ImageGenerationParams, request: Request):
    node = _node_type(node_type, IMAGE_NODE_TYPES)
    response = await _invoker(request).generate(params, node)
    return response.to_wire()


@router.post("/edit/{node_type}")
async def edit_image(node_type: str, params: ImageEditParams, request: Request):
    node = _node_type(node_type, IMAGE_NODE_TYPES)
    response = await _invoker(request).edit(params, node)
    return response.to_wire()


@router.post("/text/{node_type}")
async def generate_text(node_type: str, params: TextGenerationParams, request: Request):
    node = _node_type(node_type, TEXT_NODE_TYPES)
    response = await _invoker(request).generate_text(params, node)
    return response.to_wire()


@router.post("/video/{node_type}")
async def create_video(node_type: str, params: VideoGenerationParams, request: Request):
    node = _node_type(node_type, VIDEO_NODE_TYPES)
    response = await _invoker(request).generate_video(params, node)
    return response.to_wire()


@router.get("/video/{node_type}/{task_id}")
async def video_status(node_type: str, task_id: str, request: Request):
    node = _node_type(node_type, VIDEO_NODE_TYPES)
    response = await _invoker(request).video_status(task_id, node)
    return response.to_wire()


@router.get("/video/{node_type}/{task_id}/content")
async def video_content(node_type: str, task_id: str, request: Request):
    node = _node_type(node_type, VIDEO_NODE_TYPES)
    response = await _invoker(request).video_content(task_id, node)
    return response.to_wire()


@router.get("/metrics")
async def metrics(request: Request):
    return _invoker(request).metrics_snapshot()
