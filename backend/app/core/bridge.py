"""Host-side bridge: named commands that talk to the provider APIs.

invoke(command, params) takes the camelCase params object and returns
{"success": bool, ...}. HTTP-level failures come back as success=false with

    error = "API 返回错误 (<status>)：<body>"

which is what services.generation.diagnostics parses. Only an unknown command
(or a bug) raises.

Commands:
  gemini_generate_content: image generation / editing (Gemini wire format)
  gemini_generate_text: text via Gemini generateContent
  openai_chat_completion: text via the openai SDK (chat completions)
  claude_chat_completion: text via Anthropic Messages API
  video_create_task: start a /v1/videos generation task
  video_get_status: poll a video task
  video_get_content: download a finished video as base64
"""
import base64
import json
import logging
import time
from typing import Any, Awaitable, Callable, Optional, Protocol

import httpx
from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI

from config import settings
from services.generation.errors import TransportError

logger = logging.getLogger("creator.bridge")

TIMEOUT_MESSAGE = "请求超时，请稍后重试"
CONNECT_MESSAGE = "无法连接到服务器，请检查网络"
NO_RESPONSE_MESSAGE = "无有效响应"
NO_TASK_ID_MESSAGE = "API 未返回任务 ID"


class BridgeCommandError(TransportError):
    """Command name not known to the bridge."""
    def __init__(self, command: str):
        self.command = command
        super().__init__(f"Unknown bridge command: {command}")


class Bridge(Protocol):
    async def invoke(self, command: str, params: dict) -> dict: ...


def api_error(status_code: int, body: str) -> dict:
    return {"success": False, "error": f"API 返回错误 ({status_code})：{body}"}


def split_data_url(data: str, default_mime: str = "image/png") -> tuple[str, str]:
    """"data:image/jpeg;base64,AAA" -> ("image/jpeg", "AAA"); bare base64 passes through."""
    if data.startswith("data:") and "," in data:
        header, payload = data.split(",", 1)
        mime = header[5:].split(";", 1)[0] or default_mime
        return mime, payload
    return default_mime, data


def _json_or_none(resp: httpx.Response) -> Optional[dict]:
    try:
        data = resp.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


class HttpBridge:
    """Bridge over httpx (Gemini, Claude) and the openai SDK (OpenAI)."""

    def __init__(
        self,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.timeout = timeout if timeout is not None else settings.BRIDGE_TIMEOUT
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=self.timeout)
        self._commands: dict[str, Callable[[dict], Awaitable[dict]]] = {
            "gemini_generate_content": self.gemini_generate_content,
            "gemini_generate_text": self.gemini_generate_text,
            "openai_chat_completion": self.openai_chat_completion,
            "claude_chat_completion": self.claude_chat_completion,
            "video_create_task": self.video_create_task,
            "video_get_status": self.video_get_status,
            "video_get_content": self.video_get_content,
        }

    @property
    def commands(self) -> list[str]:
        return list(self._commands)

    async def invoke(self, command: str, params: dict) -> dict:
        handler = self._commands.get(command)
        if handler is None:
            raise BridgeCommandError(command)

        start = time.monotonic()
        try:
            result = await handler(params)
        except httpx.TimeoutException:
            result = {"success": False, "error": TIMEOUT_MESSAGE}
        except httpx.ConnectError:
            result = {"success": False, "error": CONNECT_MESSAGE}
        except httpx.HTTPError as exc:
            result = {"success": False, "error": f"请求失败: {exc}"}

        logger.info(
            "%s model=%s success=%s in %.0f ms",
            command, params.get("model"), result.get("success"),
            (time.monotonic() - start) * 1000,
        )
        return result

    async def close(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    # ------------------------------------------------------------------
    # Gemini
    # ------------------------------------------------------------------
    async def _post_gemini(self, params: dict, body: dict) -> httpx.Response:
        url = f"{params['baseUrl']}/models/{params['model']}:generateContent"
        return await self._http.post(
            url,
            params={"key": params["apiKey"]},
            headers={"content-type": "application/json"},
            json=body,
        )

    async def gemini_generate_content(self, params: dict) -> dict:
        parts: list[dict] = [{"text": params["prompt"]}]
        for image in params.get("inputImages") or []:
            mime, data = split_data_url(image)
            parts.append({"inline_data": {"mime_type": mime, "data": data}})

        image_config: dict[str, Any] = {}
        if params.get("aspectRatio"):
            image_config["aspectRatio"] = params["aspectRatio"]
        if params.get("imageSize"):
            image_config["imageSize"] = params["imageSize"]

        generation_config: dict[str, Any] = {"responseModalities": ["TEXT", "IMAGE"]}
        if image_config:
            generation_config["imageConfig"] = image_config

        resp = await self._post_gemini(params, {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": generation_config,
        })
        if resp.status_code != 200:
            return api_error(resp.status_code, resp.text)

        data = _json_or_none(resp)
        if data is None:
            return {"success": False, "error": f"解析响应失败: {resp.text[:200]}"}

        image_data = None
        texts = []
        for part in _gemini_parts(data):
            inline = part.get("inlineData") or part.get("inline_data")
            if inline and inline.get("data") and image_data is None:
                image_data = inline["data"]
            elif part.get("text"):
                texts.append(part["text"])

        result: dict[str, Any] = {"success": True}
        if image_data is not None:
            result["imageData"] = image_data
        if texts:
            result["text"] = "".join(texts)
        return result

    async def gemini_generate_text(self, params: dict) -> dict:
        prompt = params["prompt"]
        if params.get("systemPrompt"):
            prompt = f"系统指令：{params['systemPrompt']}\n\n用户请求：{prompt}"
        parts: list[dict] = [{"text": prompt}]
        for file in params.get("files") or []:
            parts.append({"inline_data": {"mime_type": file["mimeType"], "data": file["data"]}})

        generation_config: dict[str, Any] = {}
        if params.get("temperature") is not None:
            generation_config["temperature"] = params["temperature"]
        if params.get("maxTokens") is not None:
            generation_config["maxOutputTokens"] = params["maxTokens"]
        if params.get("responseJsonSchema"):
            generation_config["responseMimeType"] = "application/json"
            generation_config["responseSchema"] = params["responseJsonSchema"]

        body: dict[str, Any] = {"contents": [{"role": "user", "parts": parts}]}
        if generation_config:
            body["generationConfig"] = generation_config

        resp = await self._post_gemini(params, body)
        if resp.status_code != 200:
            return api_error(resp.status_code, resp.text)

        data = _json_or_none(resp)
        parts_out = _gemini_parts(data or {})
        if not parts_out:
            return {"success": False, "error": NO_RESPONSE_MESSAGE}
        return {
            "success": True,
            "content": "".join(p.get("text", "") for p in parts_out),
        }

    # ------------------------------------------------------------------
    # OpenAI (SDK)
    # ------------------------------------------------------------------
    async def openai_chat_completion(self, params: dict) -> dict:
        client = AsyncOpenAI(
            api_key=params["apiKey"],
            base_url=f"{params['baseUrl']}/v1",
            timeout=self.timeout,
            max_retries=0,
            http_client=self._http,
        )

        messages: list[dict] = []
        if params.get("systemPrompt"):
            messages.append({"role": "system", "content": params["systemPrompt"]})
        files = params.get("files") or []
        if files:
            content: list[dict] = [{"type": "text", "text": params["prompt"]}]
            for file in files:
                content.append(_openai_file_part(file))
            messages.append({"role": "user", "content": content})
        else:
            messages.append({"role": "user", "content": params["prompt"]})

        kwargs: dict[str, Any] = {"model": params["model"], "messages": messages}
        if params.get("temperature") is not None:
            kwargs["temperature"] = params["temperature"]
        if params.get("maxTokens") is not None:
            kwargs["max_tokens"] = params["maxTokens"]
        if params.get("responseJsonSchema"):
            kwargs["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "response", "schema": params["responseJsonSchema"]},
            }

        try:
            response = await client.chat.completions.create(**kwargs)
        except APITimeoutError:
            return {"success": False, "error": TIMEOUT_MESSAGE}
        except APIConnectionError:
            return {"success": False, "error": CONNECT_MESSAGE}
        except APIStatusError as e:
            return api_error(e.status_code, e.response.text)

        if not response.choices:
            return {"success": False, "error": NO_RESPONSE_MESSAGE}
        return {"success": True, "content": response.choices[0].message.content or ""}

    # ------------------------------------------------------------------
    # Claude
    # ------------------------------------------------------------------
    async def claude_chat_completion(self, params: dict) -> dict:
        content: list[dict] = [{"type": "text", "text": params["prompt"]}]
        for file in params.get("files") or []:
            content.append(_claude_file_part(file))

        body: dict[str, Any] = {
            "model": params["model"],
            "max_tokens": params.get("maxTokens") or settings.CLAUDE_DEFAULT_MAX_TOKENS,
            "messages": [{"role": "user", "content": content}],
        }
        system = params.get("systemPrompt") or ""
        if params.get("responseJsonSchema"):
            schema = json.dumps(params["responseJsonSchema"], ensure_ascii=False)
            system = (system + "\n\n" if system else "") + (
                f"Respond only with JSON that matches this JSON Schema:\n{schema}"
            )
        if system:
            body["system"] = system
        if params.get("temperature") is not None:
            body["temperature"] = params["temperature"]

        resp = await self._http.post(
            f"{params['baseUrl']}/v1/messages",
            headers={
                "x-api-key": params["apiKey"],
                "anthropic-version": settings.ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
            json=body,
        )
        if resp.status_code != 200:
            return api_error(resp.status_code, resp.text)

        data = _json_or_none(resp) or {}
        blocks = [b for b in data.get("content") or [] if b.get("type") == "text"]
        if not blocks:
            return {"success": False, "error": NO_RESPONSE_MESSAGE}
        return {"success": True, "content": "".join(b.get("text", "") for b in blocks)}

    # ------------------------------------------------------------------
    # Video (/v1/videos task API)
    # ------------------------------------------------------------------
    def _video_headers(self, params: dict) -> dict:
        return {"Authorization": f"Bearer {params['apiKey']}"}

    async def video_create_task(self, params: dict) -> dict:
        # Always multipart, so plain fields go in as (None, value) parts
        form: dict[str, tuple] = {
            "model": (None, params["model"]),
            "prompt": (None, params["prompt"]),
        }
        if params.get("seconds"):
            form["seconds"] = (None, params["seconds"])
        if params.get("size"):
            form["size"] = (None, params["size"])
        if params.get("inputImage"):
            mime, payload = split_data_url(params["inputImage"])
            try:
                image = base64.b64decode(payload)
            except ValueError as e:
                logger.warning("Reference image is not valid base64, skipped: %s", e)
            else:
                form["input_reference"] = ("reference.png", image, mime)

        resp = await self._http.post(
            f"{params['baseUrl']}/v1/videos",
            headers=self._video_headers(params),
            files=form,
        )
        if resp.status_code >= 300:
            return api_error(resp.status_code, resp.text)

        data = _json_or_none(resp)
        if data is None:
            return {"success": False, "error": f"解析响应失败: {resp.text[:200]}"}
        if data.get("error"):
            return {"success": False, "error": _video_error_message(data)}
        if not data.get("id"):
            return {"success": False, "error": NO_TASK_ID_MESSAGE}
        return _video_task(data["id"], data)

    async def video_get_status(self, params: dict) -> dict:
        task_id = params["taskId"]
        resp = await self._http.get(
            f"{params['baseUrl']}/v1/videos/{task_id}",
            headers=self._video_headers(params),
        )
        if resp.status_code >= 300:
            return api_error(resp.status_code, resp.text)

        data = _json_or_none(resp)
        if data is None:
            return {"success": False, "error": f"解析响应失败: {resp.text[:200]}"}
        result = _video_task(task_id, data)
        if data.get("error"):
            result["success"] = False
            result["error"] = _video_error_message(data)
        return result

    async def video_get_content(self, params: dict) -> dict:
        task_id = params["taskId"]
        resp = await self._http.get(
            f"{params['baseUrl']}/v1/videos/{task_id}/content",
            headers=self._video_headers(params),
        )
        if resp.status_code >= 300:
            return api_error(resp.status_code, resp.text)
        return {
            "success": True,
            "taskId": task_id,
            "videoData": base64.b64encode(resp.content).decode("ascii"),
        }


def _video_task(task_id: str, data: dict) -> dict:
    result: dict[str, Any] = {"success": True, "taskId": task_id}
    if data.get("status") is not None:
        result["status"] = data["status"]
    if data.get("progress") is not None:
        result["progress"] = data["progress"]
    return result


def _video_error_message(data: dict) -> str:
    error = data.get("error")
    if isinstance(error, dict) and error.get("message"):
        return error["message"]
    return "视频生成失败"


def _gemini_parts(data: dict) -> list[dict]:
    candidates = data.get("candidates") or [{}]
    return (candidates[0].get("content") or {}).get("parts") or []


def _decoded_text(file: dict) -> str:
    try:
        text = base64.b64decode(file["data"]).decode("utf-8", errors="replace")
    except ValueError:
        text = ""
    name = file.get("fileName") or "attachment"
    return f"[{name}]\n{text}"


def _openai_file_part(file: dict) -> dict:
    if file["mimeType"].startswith("image/"):
        return {
            "type": "image_url",
            "image_url": {"url": f"data:{file['mimeType']};base64,{file['data']}"},
        }
    return {"type": "text", "text": _decoded_text(file)}


def _claude_file_part(file: dict) -> dict:
    mime = file["mimeType"]
    source = {"type": "base64", "media_type": mime, "data": file["data"]}
    if mime.startswith("image/"):
        return {"type": "image", "source": source}
    if mime == "application/pdf":
        return {"type": "document", "source": source}
    return {"type": "text", "text": _decoded_text(file)}
