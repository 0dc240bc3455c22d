"""GenerationInvoker: node-facing entry point for image, text and video generation.

No public call raises: every failure becomes a GenerationResponse with
`error` (and `error_details` when a request was actually sent).

abort is an asyncio.Event checked before and after the bridge call. It is
NOT passed into the bridge, so an in-flight provider request keeps running
until it resolves on its own; a late result is just discarded.
"""
import asyncio
import json
import logging
import time
import traceback
from collections import defaultdict, deque
from typing import Callable, Optional

from core.bridge import Bridge
from models.generation import (
    MAX_INPUT_IMAGES,
    PRO_IMAGE_MODEL,
    SUPPORTED_ASPECT_RATIOS,
    SUPPORTED_IMAGE_SIZES,
    SUPPORTED_VIDEO_SECONDS,
    GenerationRequest,
    GenerationResponse,
    ImageEditParams,
    ImageGenerationParams,
    TextGenerationParams,
    VideoGenerationParams,
)
from models.settings import Provider, ProviderProtocol
from services.generation import diagnostics, router
from services.generation.diagnostics import ErrorContext
from services.generation.errors import (
    APIError,
    CancellationError,
    ConfigurationError,
    GenerationError,
)
from services.generation.resolver import ProviderResolver
from services.generation.router import Modality

logger = logging.getLogger("creator.generation")

CANCELLED = "cancelled"
DEFAULT_ASPECT_RATIO = "1:1"
EMPTY_IMAGE_MESSAGE = "API 返回成功但未包含图片数据"
FALLBACK_ERROR_MESSAGE = "请求失败"
INVALID_JSON_MESSAGE = "model output is not valid JSON"

# Latency samples kept per bridge command
LATENCY_WINDOW = 100


class InvalidRequestError(ConfigurationError):
    """Params rejected before dispatch."""
    kind = "validation"


def validate_json_output(content: str) -> dict:
    """Check structured-output text: {"valid": True, "data": ...} or
    {"valid": False, "error": ...}. A ```json fence around it is tolerated.

    Opt-in helper for callers; generate_text never rewrites content.
    """
    text = (content or "").strip()
    if text.startswith("```"):
        lines = text.split("\n")
        if lines[0].startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines).strip()
    try:
        return {"valid": True, "data": json.loads(text)}
    except json.JSONDecodeError:
        return {"valid": False, "error": INVALID_JSON_MESSAGE}


def validate_image_params(params: ImageGenerationParams) -> None:
    if not params.prompt or not params.prompt.strip():
        raise InvalidRequestError("prompt is required")
    if params.aspect_ratio and params.aspect_ratio not in SUPPORTED_ASPECT_RATIOS:
        raise InvalidRequestError(f"unsupported aspect ratio: {params.aspect_ratio}")
    if params.image_size and params.image_size not in SUPPORTED_IMAGE_SIZES:
        raise InvalidRequestError(f"unsupported image size: {params.image_size}")
    images = getattr(params, "input_images", None) or []
    if len(images) > MAX_INPUT_IMAGES:
        raise InvalidRequestError(
            f"too many input images: {len(images)} (max {MAX_INPUT_IMAGES})"
        )


def validate_text_params(params: TextGenerationParams) -> None:
    if not params.prompt or not params.prompt.strip():
        raise InvalidRequestError("prompt is required")
    if params.max_tokens is not None and params.max_tokens <= 0:
        raise InvalidRequestError("max_tokens must be positive")


def validate_video_params(params: VideoGenerationParams) -> None:
    if not params.prompt or not params.prompt.strip():
        raise InvalidRequestError("prompt is required")
    if params.seconds and params.seconds not in SUPPORTED_VIDEO_SECONDS:
        raise InvalidRequestError(f"unsupported video length: {params.seconds}")


def validate_task_id(task_id: str) -> None:
    if not task_id or not task_id.strip():
        raise InvalidRequestError("task id is required")
    if "/" in task_id:
        raise InvalidRequestError(f"invalid task id: {task_id}")


class InvocationMetrics:
    """Counters for the metrics endpoint. Single event loop, no locking."""

    def __init__(self):
        self.requests = 0
        self.successes = 0
        self.errors: dict[str, int] = defaultdict(int)
        self.latency_ms: dict[str, deque] = defaultdict(lambda: deque(maxlen=LATENCY_WINDOW))

    def record_request(self) -> None:
        self.requests += 1

    def record_latency(self, command: str, elapsed_ms: float) -> None:
        self.latency_ms[command].append(elapsed_ms)

    def record_success(self) -> None:
        self.successes += 1

    def record_error(self, kind: str) -> None:
        self.errors[kind] += 1

    def snapshot(self) -> dict:
        latency = {}
        for command, samples in self.latency_ms.items():
            if not samples:
                continue
            latency[command] = {
                "count": len(samples),
                "avg_ms": round(sum(samples) / len(samples), 1),
                "max_ms": round(max(samples), 1),
                "last_ms": round(samples[-1], 1),
            }
        return {
            "requests": self.requests,
            "successes": self.successes,
            "errors": dict(self.errors),
            "latency": latency,
        }


class GenerationInvoker:

    def __init__(self, resolver: ProviderResolver, bridge: Bridge):
        self.resolver = resolver
        self.bridge = bridge
        self.metrics = InvocationMetrics()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def generate(
        self,
        params: ImageGenerationParams,
        node_type,
        abort: Optional[asyncio.Event] = None,
    ) -> GenerationResponse:
        """Text-to-image."""
        return await self._run_image(params, node_type, abort, input_images=None)

    async def edit(
        self,
        params: ImageEditParams,
        node_type,
        abort: Optional[asyncio.Event] = None,
    ) -> GenerationResponse:
        """Image editing with reference images."""
        return await self._run_image(
            params, node_type, abort, input_images=list(params.input_images),
        )

    async def generate_text(
        self,
        params: TextGenerationParams,
        node_type,
        abort: Optional[asyncio.Event] = None,
    ) -> GenerationResponse:
        prepared = self._prepare(
            node_type, abort, Modality.TEXT, lambda: validate_text_params(params),
        )
        if isinstance(prepared, GenerationResponse):
            return prepared
        provider, base = prepared

        command = router.command_for(provider.protocol, Modality.TEXT)
        request = GenerationRequest(
            base_url=router.text_base_url(base, provider.protocol),
            api_key=provider.api_key,
            model=params.model,
            prompt=params.prompt,
            system_prompt=params.system_prompt,
            temperature=params.temperature,
            max_tokens=params.max_tokens,
            files=list(params.files) or None,
            response_json_schema=params.response_json_schema,
        )
        context = _context(provider, command, request)

        result = await self._dispatch(command, request, context, abort)
        if isinstance(result, GenerationResponse):
            return result

        self.metrics.record_success()
        return GenerationResponse(content=result.get("content") or "")

    async def generate_video(
        self,
        params: VideoGenerationParams,
        node_type,
        abort: Optional[asyncio.Event] = None,
    ) -> GenerationResponse:
        """Start a video task. The response carries taskId; poll with video_status."""
        prepared = self._prepare(
            node_type, abort, Modality.VIDEO, lambda: validate_video_params(params),
        )
        if isinstance(prepared, GenerationResponse):
            return prepared
        provider, base = prepared

        command = router.command_for(provider.protocol, Modality.VIDEO)
        request = GenerationRequest(
            base_url=router.video_base_url(base),
            api_key=provider.api_key,
            model=params.model,
            prompt=params.prompt,
            seconds=params.seconds,
            size=params.size,
            input_image=params.input_image,
        )
        context = _context(provider, command, request)

        result = await self._dispatch(command, request, context, abort)
        if isinstance(result, GenerationResponse):
            return result

        self.metrics.record_success()
        return GenerationResponse(
            task_id=result.get("taskId"),
            status=result.get("status"),
            progress=result.get("progress"),
        )

    async def video_status(
        self,
        task_id: str,
        node_type,
        abort: Optional[asyncio.Event] = None,
    ) -> GenerationResponse:
        return await self._run_video_task(router.VIDEO_STATUS_COMMAND, task_id, node_type, abort)

    async def video_content(
        self,
        task_id: str,
        node_type,
        abort: Optional[asyncio.Event] = None,
    ) -> GenerationResponse:
        """Finished video as base64 in `videoData`."""
        return await self._run_video_task(router.VIDEO_CONTENT_COMMAND, task_id, node_type, abort)

    def metrics_snapshot(self) -> dict:
        return self.metrics.snapshot()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _prepare(
        self,
        node_type,
        abort: Optional[asyncio.Event],
        modality: Modality,
        validate: Callable[[], None],
    ) -> tuple[Provider, str] | GenerationResponse:
        """Pre-dispatch checks. Returns (provider, base url) or a plain error response."""
        self.metrics.record_request()
        try:
            _check_abort(abort)
            validate()
            provider = self.resolver.resolve(node_type)
            base = _base_of(provider, modality)
        except CancellationError:
            return self._cancelled()
        except GenerationError as e:
            return self._plain_error(e)
        return provider, base

    async def _run_image(
        self,
        params: ImageGenerationParams,
        node_type,
        abort: Optional[asyncio.Event],
        input_images: Optional[list[str]],
    ) -> GenerationResponse:
        prepared = self._prepare(
            node_type, abort, Modality.IMAGE, lambda: validate_image_params(params),
        )
        if isinstance(prepared, GenerationResponse):
            return prepared
        provider, base = prepared

        is_pro = params.model == PRO_IMAGE_MODEL
        command = router.command_for(provider.protocol, Modality.IMAGE)
        request = GenerationRequest(
            base_url=router.api_base_url(base, provider.protocol),
            api_key=provider.api_key,
            model=params.model,
            prompt=params.prompt,
            input_images=input_images,
            aspect_ratio=params.aspect_ratio or DEFAULT_ASPECT_RATIO,
            image_size=params.image_size if is_pro else None,
        )
        context = _context(provider, command, request)

        result = await self._dispatch(command, request, context, abort)
        if isinstance(result, GenerationResponse):
            return result

        image_data = result.get("imageData")
        if not image_data:
            self.metrics.record_error("empty_image")
            details = diagnostics.parse(EMPTY_IMAGE_MESSAGE, context, name="EmptyImageData")
            return GenerationResponse(
                error=EMPTY_IMAGE_MESSAGE, text=result.get("text"), error_details=details,
            )

        self.metrics.record_success()
        return GenerationResponse(image_data=image_data, text=result.get("text"))

    async def _run_video_task(
        self,
        command: str,
        task_id: str,
        node_type,
        abort: Optional[asyncio.Event],
    ) -> GenerationResponse:
        prepared = self._prepare(
            node_type, abort, Modality.VIDEO, lambda: validate_task_id(task_id),
        )
        if isinstance(prepared, GenerationResponse):
            return prepared
        provider, base = prepared

        request = GenerationRequest(
            base_url=router.video_base_url(base),
            api_key=provider.api_key,
            task_id=task_id,
        )
        context = _context(provider, command, request)

        result = await self._dispatch(command, request, context, abort)
        if isinstance(result, GenerationResponse):
            return result

        self.metrics.record_success()
        return GenerationResponse(
            task_id=result.get("taskId") or task_id,
            status=result.get("status"),
            progress=result.get("progress"),
            video_data=result.get("videoData"),
        )

    async def _dispatch(
        self,
        command: str,
        request: GenerationRequest,
        context: ErrorContext,
        abort: Optional[asyncio.Event],
    ) -> dict | GenerationResponse:
        """Bridge call. Returns the raw success payload or a finished error response."""
        logger.info(
            "Dispatching %s (model=%s, provider=%s)",
            command, request.model, context.provider,
        )
        start = time.monotonic()
        try:
            result = await self.bridge.invoke(command, request.to_bridge_params())
        except CancellationError:
            return self._cancelled()
        except Exception as exc:
            elapsed_ms = (time.monotonic() - start) * 1000
            self.metrics.record_latency(command, elapsed_ms)
            if abort is not None and abort.is_set():
                logger.info("%s failed after abort, error discarded: %s", command, exc)
                return self._cancelled()
            self.metrics.record_error("transport")
            logger.error("%s transport failure after %.0f ms: %s", command, elapsed_ms, exc)
            details = diagnostics.parse(
                str(exc), context,
                name=type(exc).__name__,
                stack="".join(traceback.format_exception(exc)),
            )
            return GenerationResponse(error=str(exc), error_details=details)

        elapsed_ms = (time.monotonic() - start) * 1000
        self.metrics.record_latency(command, elapsed_ms)

        if abort is not None and abort.is_set():
            logger.info("%s finished after abort, result discarded", command)
            return self._cancelled()

        if not result.get("success"):
            message = result.get("error") or FALLBACK_ERROR_MESSAGE
            self.metrics.record_error(APIError.kind)
            logger.warning("%s failed in %.0f ms: %s", command, elapsed_ms, message[:200])
            details = diagnostics.parse(message, context)
            return GenerationResponse(error=message, error_details=details)

        logger.info("%s succeeded in %.0f ms", command, elapsed_ms)
        return result

    def _cancelled(self) -> GenerationResponse:
        self.metrics.record_error(CancellationError.kind)
        return GenerationResponse(error=CANCELLED)

    def _plain_error(self, error: GenerationError) -> GenerationResponse:
        self.metrics.record_error(error.kind)
        logger.warning("Generation rejected: %s", error)
        return GenerationResponse(error=str(error))


def _check_abort(abort: Optional[asyncio.Event]) -> None:
    if abort is not None and abort.is_set():
        raise CancellationError(CANCELLED)


def _base_of(provider: Provider, modality: Modality) -> str:
    if provider.base_url:
        return provider.base_url
    # Gemini text is the only path with a public endpoint to fall back on
    if modality is Modality.TEXT and provider.protocol is ProviderProtocol.GOOGLE:
        return router.default_base_url(provider.protocol)
    raise ConfigurationError("base url missing")


def _context(provider: Provider, command: str, request: GenerationRequest) -> ErrorContext:
    return ErrorContext(
        model=request.model,
        provider=provider.name or provider.id,
        request_url=router.request_url(
            command, request.base_url, request.model, request.task_id or "",
        ),
        request_body=request.redacted_body(),
    )
