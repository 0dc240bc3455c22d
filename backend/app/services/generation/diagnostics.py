"""Structured diagnostics from bridge error strings.

The bridge reports HTTP failures as a flat string:

    API 返回错误 (401)：{"error": {"message": "Invalid key"}}

Status code and response body are recovered from that string with two
patterns. Treat the format as a fixed compatibility contract with the bridge;
do not add new markers here.
"""
import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from models.generation import ErrorDetails

STATUS_CODE_RE = re.compile(r"\((\d{3})\)")
RESPONSE_BODY_RE = re.compile(r"API 返回错误\s*\(\d{3}\)[：:]\s*([\s\S]*)")


@dataclass
class ErrorContext:
    model: str
    provider: str
    request_url: str
    request_body: dict[str, Any] = field(default_factory=dict)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def extract_status_code(message: str) -> Optional[int]:
    match = STATUS_CODE_RE.search(message)
    return int(match.group(1)) if match else None


def extract_response_body(message: str) -> Any:
    """Parsed JSON, else trimmed text; None when absent or empty."""
    match = RESPONSE_BODY_RE.search(message)
    if not match:
        return None
    remainder = match.group(1).strip()
    if not remainder:
        return None
    try:
        return json.loads(remainder)
    except json.JSONDecodeError:
        return remainder


def parse(
    raw_message: str,
    context: ErrorContext,
    name: str = "API_Error",
    stack: Optional[str] = None,
) -> ErrorDetails:
    """Build ErrorDetails from a bridge error string. Never raises."""
    return ErrorDetails(
        name=name,
        message=raw_message,
        timestamp=utc_timestamp(),
        model=context.model,
        provider=context.provider,
        request_url=context.request_url,
        request_body=dict(context.request_body),
        status_code=extract_status_code(raw_message),
        response_body=extract_response_body(raw_message),
        stack=stack,
    )
