"""
Claude and Gemini clients.

Claude goes through the Anthropic SDK and Gemini through google-genai, both
with the SDK's own retries disabled. Each provider turns an SDK failure into
a ProviderError whose ``kind`` tells the dispatcher whether to retry, fall
back or give up. A response without the expected shape is an INVALID
failure, never a crash. The clients never retry or fall back on their own.

``post_json`` is the plain REST helper used by the Freepik client.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import anthropic
import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from madison.config.logger import app_logger
from madison.config.settings import settings
from madison.services.reference_images import MaterializedReference
from madison.utils.errors import ProviderConfigError, ProviderError


QUOTA_SIGNALS = ("quota", "credit", "rate limit", "rate_limit", "resource_exhausted", "insufficient", "billing")


@dataclass
class TextResult:
    text: str
    provider: str
    model: str


@dataclass
class ImageResult:
    provider: str
    model: str
    image_url: Optional[str] = None
    image_base64: Optional[str] = None
    mime_type: str = "image/png"
    task_id: Optional[str] = None


@dataclass
class VideoResult:
    provider: str
    model: str
    video_url: str
    task_id: Optional[str] = None


def classify_http_error(provider: str, status_code: int, body: str) -> ProviderError:
    """Map an HTTP status and body to a ProviderError kind."""
    body = body or ""
    lowered = body.lower()
    if status_code in (402, 429):
        kind = ProviderError.QUOTA
    elif status_code in (401, 403):
        kind = ProviderError.AUTH
    elif status_code == 408 or status_code >= 500:
        kind = ProviderError.TRANSIENT
    elif any(signal in lowered for signal in QUOTA_SIGNALS):
        kind = ProviderError.QUOTA
    else:
        kind = ProviderError.INVALID
    return ProviderError(provider, f"HTTP {status_code}: {body[:300]}", status_code=status_code, kind=kind)


def invalid_response(provider: str, detail: str) -> ProviderError:
    return ProviderError(provider, f"unexpected response: {detail}", kind=ProviderError.INVALID)


async def post_json(
    provider: str,
    url: str,
    payload: Dict[str, Any],
    headers: Optional[Dict[str, str]] = None,
    params: Optional[Dict[str, str]] = None,
    client: Optional[httpx.AsyncClient] = None,
    method: str = "POST",
) -> Dict[str, Any]:
    """Send one JSON request and return the decoded object or raise ProviderError."""
    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=settings.AI_REQUEST_TIMEOUT_SECONDS)
    try:
        response = await client.request(
            method,
            url,
            json=payload if method == "POST" else None,
            headers=headers,
            params=params,
        )
    except httpx.TimeoutException as exc:
        raise ProviderError(provider, f"request timed out: {exc}", kind=ProviderError.TIMEOUT) from exc
    except httpx.TransportError as exc:
        raise ProviderError(provider, f"network error: {exc}", kind=ProviderError.TRANSIENT) from exc
    finally:
        if owns_client:
            await client.aclose()

    if response.status_code >= 400:
        raise classify_http_error(provider, response.status_code, response.text)
    try:
        data = response.json()
    except ValueError as exc:
        raise ProviderError(provider, "response was not JSON", response.status_code, ProviderError.INVALID) from exc
    if not isinstance(data, dict):
        raise invalid_response(provider, f"expected a JSON object, got {type(data).__name__}")
    return data


# ═══════════════════════════════════════════════════════════════════════════════
# CLAUDE
# ═══════════════════════════════════════════════════════════════════════════════

def _claude_text(message: Any) -> str:
    content = getattr(message, "content", None)
    if not isinstance(content, list):
        raise invalid_response("claude", f"content is {type(content).__name__}, not a list of blocks")
    return "".join(
        block.text
        for block in content
        if getattr(block, "type", None) == "text" and isinstance(getattr(block, "text", None), str)
    ).strip()


class ClaudeTextProvider:
    """Anthropic Messages API through ``anthropic.AsyncAnthropic``."""

    name = "claude"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 client: Optional[anthropic.AsyncAnthropic] = None):
        self.api_key = settings.ANTHROPIC_API_KEY if api_key is None else api_key
        self.model = model or settings.CLAUDE_TEXT_MODEL
        self.client = client

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _new_client(self) -> anthropic.AsyncAnthropic:
        return anthropic.AsyncAnthropic(
            api_key=self.api_key,
            base_url=settings.ANTHROPIC_BASE_URL,
            timeout=settings.AI_REQUEST_TIMEOUT_SECONDS,
            max_retries=0,
        )

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> TextResult:
        if not self.configured:
            raise ProviderConfigError("ANTHROPIC_API_KEY is not configured")

        owns_client = self.client is None
        client = self._new_client() if owns_client else self.client
        try:
            message = await client.messages.create(
                model=self.model,
                max_tokens=max_tokens or settings.TEXT_MAX_TOKENS,
                temperature=settings.TEXT_TEMPERATURE if temperature is None else temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
            )
        except anthropic.APITimeoutError as exc:
            raise ProviderError(self.name, f"request timed out: {exc}", kind=ProviderError.TIMEOUT) from exc
        except anthropic.APIConnectionError as exc:
            raise ProviderError(self.name, f"network error: {exc}", kind=ProviderError.TRANSIENT) from exc
        except anthropic.APIStatusError as exc:
            raise classify_http_error(self.name, exc.status_code, exc.message or str(exc)) from exc
        finally:
            if owns_client:
                await client.close()

        text = _claude_text(message)
        if not text:
            raise ProviderError(self.name, "response contained no text", kind=ProviderError.INVALID)
        return TextResult(text=text, provider=self.name, model=self.model)


# ═══════════════════════════════════════════════════════════════════════════════
# GEMINI
# ═══════════════════════════════════════════════════════════════════════════════

def _gemini_client(api_key: str) -> genai.Client:
    timeout_ms = int(settings.AI_REQUEST_TIMEOUT_SECONDS * 1000)
    return genai.Client(api_key=api_key, http_options=types.HttpOptions(timeout=timeout_ms))


def _gemini_parts(response: Any) -> List[Any]:
    candidates = getattr(response, "candidates", None)
    if not candidates:
        feedback = getattr(response, "prompt_feedback", None)
        reason = getattr(feedback, "block_reason", None)
        reason = getattr(reason, "value", reason) or "no candidates returned"
        raise ProviderError("gemini", f"empty response ({reason})", kind=ProviderError.INVALID)
    if not isinstance(candidates, list):
        raise invalid_response("gemini", f"candidates is {type(candidates).__name__}")
    parts = getattr(getattr(candidates[0], "content", None), "parts", None) or []
    if not isinstance(parts, list):
        raise invalid_response("gemini", f"parts is {type(parts).__name__}")
    return parts


async def _gemini_generate(client: Any, model: str, contents: Any, config: types.GenerateContentConfig) -> Any:
    try:
        return await client.aio.models.generate_content(model=model, contents=contents, config=config)
    except genai_errors.APIError as exc:
        raise classify_http_error("gemini", exc.code or 500, exc.message or str(exc)) from exc
    except httpx.TimeoutException as exc:
        raise ProviderError("gemini", f"request timed out: {exc}", kind=ProviderError.TIMEOUT) from exc
    except httpx.TransportError as exc:
        raise ProviderError("gemini", f"network error: {exc}", kind=ProviderError.TRANSIENT) from exc


class GeminiTextProvider:
    """Gemini generateContent for text."""

    name = "gemini"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 client: Optional[genai.Client] = None):
        self.api_key = settings.GEMINI_API_KEY if api_key is None else api_key
        self.model = model or settings.GEMINI_TEXT_MODEL
        self.client = client

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> TextResult:
        if not self.configured:
            raise ProviderConfigError("GEMINI_API_KEY is not configured")

        config = types.GenerateContentConfig(
            system_instruction=system_prompt,
            temperature=settings.TEXT_TEMPERATURE if temperature is None else temperature,
            max_output_tokens=max_tokens or settings.TEXT_MAX_TOKENS,
        )
        client = self.client or _gemini_client(self.api_key)
        response = await _gemini_generate(client, self.model, user_prompt, config)

        text = "".join(
            part.text for part in _gemini_parts(response) if isinstance(getattr(part, "text", None), str)
        ).strip()
        if not text:
            raise ProviderError(self.name, "response contained no text", kind=ProviderError.INVALID)
        return TextResult(text=text, provider=self.name, model=self.model)


class GeminiImageProvider:
    """Gemini image generation with inline reference images."""

    name = "gemini"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 client: Optional[genai.Client] = None):
        self.api_key = settings.GEMINI_API_KEY if api_key is None else api_key
        self.model = model or settings.GEMINI_IMAGE_MODEL
        self.client = client

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def generate_image(
        self,
        prompt: str,
        references: Sequence[MaterializedReference] = (),
        aspect_ratio: Optional[str] = None,
        seed: Optional[int] = None,
    ) -> ImageResult:
        if not self.configured:
            raise ProviderConfigError("GEMINI_API_KEY is not configured")

        config = types.GenerateContentConfig(
            response_modalities=["IMAGE"],
            image_config=types.ImageConfig(aspect_ratio=aspect_ratio) if aspect_ratio else None,
            seed=seed if seed is not None and seed >= 0 else None,
        )
        contents = [
            types.Part.from_text(text=prompt),
            *(types.Part.from_bytes(data=reference.content, mime_type=reference.mime_type)
              for reference in references),
        ]
        app_logger.info(f"Gemini image request: {len(prompt)} chars, {len(references)} reference(s)")
        client = self.client or _gemini_client(self.api_key)
        response = await _gemini_generate(client, self.model, contents, config)

        for part in _gemini_parts(response):
            inline = getattr(part, "inline_data", None)
            data = getattr(inline, "data", None)
            if not data:
                continue
            if isinstance(data, bytes):
                data = base64.b64encode(data).decode("ascii")
            elif not isinstance(data, str):
                raise invalid_response(self.name, f"inline image data is {type(data).__name__}")
            return ImageResult(
                provider=self.name,
                model=self.model.replace("models/", ""),
                image_base64=data,
                mime_type=getattr(inline, "mime_type", None) or "image/png",
            )
        raise ProviderError(self.name, "response contained no image", kind=ProviderError.INVALID)
