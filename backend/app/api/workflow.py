from fastapi import APIRouter, Request

from services.workflow_file import WorkflowFormatError, load_workflow

router = APIRouter(prefix="/api/workflow", tags=["workflow"])


@router.post("/validate")
async def validate_workflow_file(request: Request):
    """Accepts a raw workflow export body; reports node/edge counts."""
    body = await request.body()
    try:
        workflow = load_workflow(body)
    except WorkflowFormatError as e:
        return {"success": False, "message": str(e)}
    return {
        "success": True,
        "nodes": len(workflow["nodes"]),
        "edges": len(workflow["edges"]),
    }
