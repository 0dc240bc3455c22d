"""Workflow interchange files: JSON {"nodes": [...], "edges": [...]}."""
import json
import logging
from typing import Any

logger = logging.getLogger("creator.workflow")


class WorkflowFormatError(Exception):
    """File is not a workflow export."""
    pass


def validate_workflow(data: Any) -> dict:
    if not isinstance(data, dict):
        raise WorkflowFormatError("workflow must be a JSON object")
    missing = [key for key in ("nodes", "edges") if key not in data]
    if missing:
        raise WorkflowFormatError(f"workflow is missing: {', '.join(missing)}")
    for key in ("nodes", "edges"):
        if not isinstance(data[key], list):
            raise WorkflowFormatError(f"workflow '{key}' must be a list")
    return {"nodes": data["nodes"], "edges": data["edges"]}


def load_workflow(content: str | bytes) -> dict:
    try:
        data = json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise WorkflowFormatError(f"invalid JSON: {e}")
    workflow = validate_workflow(data)
    logger.info(
        "Workflow loaded: %d nodes, %d edges",
        len(workflow["nodes"]), len(workflow["edges"]),
    )
    return workflow


def dump_workflow(nodes: list, edges: list) -> str:
    """Export format: only nodes and edges, pretty-printed."""
    return json.dumps({"nodes": nodes, "edges": edges}, ensure_ascii=False, indent=2)
