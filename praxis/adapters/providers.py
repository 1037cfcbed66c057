"""Provider adapters wrapping one external model endpoint each.

Every adapter exposes the same capability, ``await adapter.invoke(request,
session) -> ProviderOutput``, and raises a typed :class:`ProviderError` on
failure. Translating HTTP status codes and provider-specific error text into
an :class:`ErrorClass` happens here and nowhere else.
"""
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

import httpx

from core.errors import (
    AuthFailureError,
    MalformedOutputError,
    ProviderError,
    QuotaExceededError,
    TransientProviderError,
)
from core.logging import logger
from praxis.prompts import build_messages, build_system_prompt
from praxis.types import Citation, ProviderOutput, Request, Session

__all__ = [
    "ProviderAdapter",
    "OpenAIAdapter",
    "GrokAdapter",
    "PerplexityAdapter",
    "AnthropicAdapter",
    "GeminiAdapter",
    "OpenAIImageAdapter",
    "ADAPTERS",
    "create_adapter",
    "calculate_cost",
    "classify_http_error",
]

# USD per 1M tokens: (input, output)
MODEL_PRICING: Dict[str, Tuple[float, float]] = {
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4o": (2.50, 10.00),
    "claude-3-5-haiku-20241022": (0.80, 4.00),
    "grok-4-fast": (5.00, 15.00),
    "sonar": (5.00, 5.00),
    "gemini-1.5-flash": (0.0, 0.0),
    "gemini-2.5-flash": (0.0, 0.0),
}

# Cents per generated image
IMAGE_PRICING_CENTS: Dict[str, float] = {
    "dall-e-3": 4.0,
    "dall-e-2": 2.0,
}

_CITATION_RE = re.compile(r"\[(\d+)\]\s*(https?://[^\s\])]+)")


def calculate_cost(model: str, tokens: int) -> float:
    """Cost in cents, assuming a 30/70 input/output token split."""
    input_price, output_price = MODEL_PRICING.get(model, (0.0, 0.0))
    millions = tokens / 1_000_000
    usd = millions * 0.3 * input_price + millions * 0.7 * output_price
    return round(usd * 100, 4)


def classify_http_error(exc: httpx.HTTPError, provider: str) -> ProviderError:
    """Map an httpx failure onto the provider error hierarchy."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        message = f"{provider} returned HTTP {status}"
        if status in (401, 403):
            return AuthFailureError(message, provider)
        if status == 429:
            return QuotaExceededError(message, provider)
        return TransientProviderError(message, provider)
    if isinstance(exc, httpx.TimeoutException):
        return TransientProviderError(f"{provider} timed out", provider)
    return TransientProviderError(f"{provider} transport error: {exc}", provider)


class ProviderAdapter(ABC):
    """Base class for provider adapters."""

    provider: str = "base"
    default_base_url: Optional[str] = None
    confidence: float = 0.8
    http_timeout: float = 120.0

    def __init__(self, model: str, api_key: Optional[str] = None, base_url: Optional[str] = None):
        self.model = model
        self.api_key = api_key
        self.base_url = (base_url or self.default_base_url or "").rstrip("/")

    @property
    def name(self) -> str:
        return f"{self.provider}:{self.model}"

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"

    async def invoke(self, request: Request, session: Optional[Session] = None) -> ProviderOutput:
        """Run one generation. Raises ProviderError subclasses only."""
        try:
            return await self._invoke(request, session)
        except ProviderError:
            raise
        except httpx.HTTPError as e:
            error = classify_http_error(e, self.name)
            logger.error(f"{self.name} API error ({error.error_class.value}): {e}")
            raise error from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.error(f"Unexpected response shape from {self.name}: {e!r}")
            raise MalformedOutputError(f"{self.name} returned an unexpected payload", self.name) from e

    @abstractmethod
    async def _invoke(self, request: Request, session: Optional[Session]) -> ProviderOutput:
        pass

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _post(self, url: str, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                url,
                headers=headers if headers is not None else self._headers(),
                json=payload,
                timeout=self.http_timeout,
            )
            response.raise_for_status()
            return response.json()


class OpenAIAdapter(ProviderAdapter):
    """OpenAI chat completions (also the base for OpenAI-compatible APIs)."""

    provider = "openai"
    default_base_url = "https://api.openai.com/v1"
    confidence = 0.85
    vision_confidence = 0.88

    def _build_payload(self, request: Request, session: Optional[Session]) -> Dict[str, Any]:
        messages: List[Dict[str, Any]] = [{"role": "system", "content": build_system_prompt(request)}]
        messages.extend(build_messages(request, session))

        images = [a for a in request.attachments if a.kind == "image"]
        if images:
            messages[-1] = {
                "role": "user",
                "content": [
                    {"type": "text", "text": request.message},
                    *({"type": "image_url", "image_url": {"url": a.url or a.data_url()}} for a in images),
                ],
            }

        return {
            "model": self.model,
            "messages": messages,
            "temperature": 0.7,
            "max_tokens": 1000,
        }

    def _sources(self, data: Dict[str, Any], content: str) -> List[Citation]:
        return []

    async def _invoke(self, request: Request, session: Optional[Session]) -> ProviderOutput:
        data = await self._post(f"{self.base_url}/chat/completions", self._build_payload(request, session))
        content = data["choices"][0]["message"]["content"]
        if not content:
            raise MalformedOutputError(f"{self.name} returned an empty completion", self.name)

        tokens = int((data.get("usage") or {}).get("total_tokens", 0))
        confidence = self.vision_confidence if request.attachments else self.confidence
        return ProviderOutput(
            text=content,
            model=self.model,
            tokens_used=tokens,
            cost_cents=calculate_cost(self.model, tokens),
            confidence=confidence,
            sources=self._sources(data, content),
        )


class GrokAdapter(OpenAIAdapter):
    """xAI Grok through its OpenAI-compatible API."""

    provider = "grok"
    default_base_url = "https://api.x.ai/v1"
    confidence = 0.90
    vision_confidence = 0.90


class PerplexityAdapter(OpenAIAdapter):
    """Perplexity Sonar; answers carry numbered citations."""

    provider = "perplexity"
    default_base_url = "https://api.perplexity.ai"
    confidence = 0.95
    vision_confidence = 0.95

    def _sources(self, data: Dict[str, Any], content: str) -> List[Citation]:
        urls = data.get("citations")
        if isinstance(urls, list) and urls:
            return [Citation(number=i, url=str(url)) for i, url in enumerate(urls, start=1)]
        return [
            Citation(number=int(match.group(1)), url=match.group(2))
            for match in _CITATION_RE.finditer(content)
        ]


class AnthropicAdapter(ProviderAdapter):
    """Anthropic messages API."""

    provider = "anthropic"
    default_base_url = "https://api.anthropic.com/v1"
    confidence = 0.92

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key or "",
            "anthropic-version": "2023-06-01",
            "Content-Type": "application/json",
        }

    async def _invoke(self, request: Request, session: Optional[Session]) -> ProviderOutput:
        messages: List[Dict[str, Any]] = build_messages(request, session)
        # The messages API requires the conversation to open with a user turn
        while messages and messages[0]["role"] != "user":
            messages.pop(0)

        images = [a for a in request.attachments if a.kind == "image"]
        if images:
            messages[-1] = {
                "role": "user",
                "content": [
                    *(
                        {"type": "image", "source": {"type": "base64", "media_type": a.mime_type, "data": a.base64}}
                        for a in images
                    ),
                    {"type": "text", "text": request.message},
                ],
            }

        payload = {
            "model": self.model,
            "max_tokens": 1024,
            "system": build_system_prompt(request),
            "messages": messages,
        }
        data = await self._post(f"{self.base_url}/messages", payload)

        content = "".join(block.get("text", "") for block in data["content"] if block.get("type", "text") == "text")
        if not content:
            raise MalformedOutputError(f"{self.name} returned no text blocks", self.name)

        usage = data.get("usage") or {}
        tokens = int(usage.get("input_tokens", 0)) + int(usage.get("output_tokens", 0))
        return ProviderOutput(
            text=content,
            model=self.model,
            tokens_used=tokens,
            cost_cents=calculate_cost(self.model, tokens),
            confidence=self.confidence,
        )


class GeminiAdapter(ProviderAdapter):
    """Google Gemini generateContent REST API."""

    provider = "gemini"
    default_base_url = "https://generativelanguage.googleapis.com/v1beta"
    confidence = 0.80

    def _headers(self) -> Dict[str, str]:
        return {
            "x-goog-api-key": self.api_key or "",
            "Content-Type": "application/json",
        }

    async def _invoke(self, request: Request, session: Optional[Session]) -> ProviderOutput:
        contents: List[Dict[str, Any]] = [
            {"role": "user" if m["role"] == "user" else "model", "parts": [{"text": m["content"]}]}
            for m in build_messages(request, session)
        ]
        for attachment in request.attachments:
            contents[-1]["parts"].append({"inlineData": {"mimeType": attachment.mime_type, "data": attachment.base64}})

        payload = {
            "systemInstruction": {"parts": [{"text": build_system_prompt(request)}]},
            "contents": contents,
        }
        try:
            data = await self._post(f"{self.base_url}/models/{self.model}:generateContent", payload)
        except httpx.HTTPStatusError as e:
            # Gemini reports quota and key problems as free text in the error body,
            # sometimes under a 400 status.
            body = e.response.text
            if "RESOURCE_EXHAUSTED" in body:
                raise QuotaExceededError(f"{self.name} quota exhausted", self.name) from e
            if "API_KEY_INVALID" in body or "PERMISSION_DENIED" in body:
                raise AuthFailureError(f"{self.name} rejected the API key", self.name) from e
            raise

        candidates = data.get("candidates") or []
        if not candidates:
            reason = (data.get("promptFeedback") or {}).get("blockReason", "no candidates")
            raise MalformedOutputError(f"{self.name} returned no candidates ({reason})", self.name)

        parts = (candidates[0].get("content") or {}).get("parts") or []
        content = "".join(part.get("text", "") for part in parts)
        if not content:
            raise MalformedOutputError(f"{self.name} returned an empty candidate", self.name)

        tokens = int((data.get("usageMetadata") or {}).get("totalTokenCount", 0))
        return ProviderOutput(
            text=content,
            model=self.model,
            tokens_used=tokens,
            cost_cents=calculate_cost(self.model, tokens),
            confidence=self.confidence,
        )


class OpenAIImageAdapter(ProviderAdapter):
    """OpenAI image generation; the output text is the image URL."""

    provider = "openai_image"
    default_base_url = "https://api.openai.com/v1"
    confidence = 0.95

    async def _invoke(self, request: Request, session: Optional[Session]) -> ProviderOutput:
        payload: Dict[str, Any] = {
            "model": self.model,
            "prompt": request.message,
            "n": 1,
            "size": "1024x1024",
        }
        if self.model == "dall-e-3":
            payload["quality"] = "standard"

        data = await self._post(f"{self.base_url}/images/generations", payload)
        image = data["data"][0]
        url = image.get("url") or (f"data:image/png;base64,{image['b64_json']}" if image.get("b64_json") else None)
        if not url:
            raise MalformedOutputError(f"{self.name} returned no image", self.name)

        return ProviderOutput(
            text=url,
            model=self.model,
            tokens_used=0,
            cost_cents=IMAGE_PRICING_CENTS.get(self.model, 0.0),
            confidence=self.confidence,
        )


# Provider factory
ADAPTERS = {
    "openai": OpenAIAdapter,
    "grok": GrokAdapter,
    "perplexity": PerplexityAdapter,
    "anthropic": AnthropicAdapter,
    "gemini": GeminiAdapter,
    "openai_image": OpenAIImageAdapter,
}


def create_adapter(provider: str, model: str, api_key: Optional[str] = None, base_url: Optional[str] = None) -> ProviderAdapter:
    """Create an adapter instance by provider name."""
    adapter_class = ADAPTERS.get(provider.lower())
    if not adapter_class:
        raise ValueError(f"Unknown provider type: {provider}")

    return adapter_class(model=model, api_key=api_key, base_url=base_url)
