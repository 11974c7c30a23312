"""
AI question generation client.

Async OpenAI-compatible client with retry and exponential backoff, and a
cached listing of the models the provider exposes.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol

import httpx
import structlog

from campaign_core.core.config import Settings
from campaign_core.domain.clock import Clock, SystemClock

logger = structlog.get_logger()


class AIClientError(Exception):
    """Base exception for AI client errors."""


class AIRateLimitError(AIClientError):
    """Raised when rate limited by the provider."""


class AITimeoutError(AIClientError):
    """Raised when request times out."""


class AIAPIError(AIClientError):
    """Raised for other API errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(slots=True)
class GeneratedQuestions:
    questions: list[dict[str, Any]]
    model: str
    total_tokens: int
    latency_ms: int


class AIQuestionGenerator(Protocol):
    """Returns an opaque list of questions for a template type."""

    async def generate(
        self, template_type: str, params: Mapping[str, Any]
    ) -> GeneratedQuestions: ...


class ProviderCache:
    """Provider model listing with an expiry and a forced refresh hook."""

    def __init__(self, ttl_seconds: int, clock: Clock | None = None) -> None:
        self.ttl = timedelta(seconds=ttl_seconds)
        self.clock = clock or SystemClock()
        self._models: list[str] | None = None
        self._expires_at: datetime | None = None

    def get(self) -> list[str] | None:
        if self._models is None or self._expires_at is None:
            return None
        if self.clock.now() >= self._expires_at:
            return None
        return list(self._models)

    def put(self, models: list[str]) -> None:
        self._models = list(models)
        self._expires_at = self.clock.now() + self.ttl

    def invalidate(self) -> None:
        self._models = None
        self._expires_at = None


class OpenAIQuestionGenerator:
    """Async OpenAI API client with retry logic."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        max_retries: int = 3,
        timeout_seconds: float = 60,
        cache: ProviderCache | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url
        self.model = model
        self.max_retries = max(1, max_retries)
        self.timeout = timeout_seconds
        self.cache = cache or ProviderCache(ttl_seconds=300)
        self._transport = transport

        if not self.api_key:
            logger.warning("openai_api_key_missing", msg="OPENAI_API_KEY not configured")

    @classmethod
    def from_settings(
        cls, settings: Settings, clock: Clock | None = None
    ) -> OpenAIQuestionGenerator:
        return cls(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            model=settings.openai_model,
            max_retries=settings.gpt_max_retries,
            timeout_seconds=settings.gpt_timeout_seconds,
            cache=ProviderCache(settings.ai_provider_cache_ttl_seconds, clock),
        )

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def list_models(self, *, force_refresh: bool = False) -> list[str]:
        if force_refresh:
            self.cache.invalidate()
        cached = self.cache.get()
        if cached is not None:
            return cached

        data = await self._request("GET", "/models")
        models = sorted(item["id"] for item in data.get("data", []) if "id" in item)
        self.cache.put(models)
        logger.info("ai_provider_models_refreshed", count=len(models))
        return models

    async def generate(self, template_type: str, params: Mapping[str, Any]) -> GeneratedQuestions:
        count = int(params.get("count", 10))
        messages = [
            {
                "role": "system",
                "content": (
                    "You write survey and assessment questions. Reply with a JSON object "
                    'of the form {"questions": [{"text": str, "type": str, "options": [str]}]}.'
                ),
            },
            {
                "role": "user",
                "content": json.dumps(
                    {"templateType": template_type, "count": count, **dict(params)},
                    default=str,
                ),
            },
        ]
        payload = {
            "model": params.get("model") or self.model,
            "messages": messages,
            "temperature": float(params.get("temperature", 0.7)),
            "response_format": {"type": "json_object"},
        }

        started = asyncio.get_running_loop().time()
        data = await self._request("POST", "/chat/completions", json_body=payload)
        latency_ms = int((asyncio.get_running_loop().time() - started) * 1000)

        try:
            content = json.loads(data["choices"][0]["message"]["content"])
            questions = list(content["questions"])
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise AIAPIError("Provider returned an unparseable question list") from exc

        return GeneratedQuestions(
            questions=questions,
            model=data.get("model", payload["model"]),
            total_tokens=data.get("usage", {}).get("total_tokens", 0),
            latency_ms=latency_ms,
        )

    async def _request(
        self, method: str, path: str, *, json_body: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Send a request, retrying rate limits, timeouts and 5xx with 1s, 2s, 4s backoff."""
        if not self.api_key:
            raise AIClientError("OPENAI_API_KEY not configured")

        last_error: AIClientError | None = None
        for attempt in range(self.max_retries):
            try:
                async with httpx.AsyncClient(
                    timeout=self.timeout, transport=self._transport
                ) as client:
                    response = await client.request(
                        method, f"{self.base_url}{path}", headers=self._headers, json=json_body
                    )

                if response.status_code == 200:
                    return response.json()
                if response.status_code == 429:
                    last_error = AIRateLimitError(f"Rate limited (attempt {attempt + 1})")
                    await logger.awarning("ai_rate_limited", attempt=attempt + 1, path=path)
                elif response.status_code >= 500:
                    last_error = AIAPIError(
                        f"Server error: {response.status_code}", status_code=response.status_code
                    )
                    await logger.awarning(
                        "ai_server_error", status_code=response.status_code, attempt=attempt + 1
                    )
                else:
                    raise AIAPIError(
                        f"API error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
            except httpx.TimeoutException:
                last_error = AITimeoutError(f"Request timed out (attempt {attempt + 1})")
                await logger.awarning(
                    "ai_timeout", attempt=attempt + 1, timeout_seconds=self.timeout
                )
            except httpx.RequestError as exc:
                last_error = AIClientError(f"Request failed: {exc}")
                await logger.awarning("ai_request_error", error=str(exc), attempt=attempt + 1)

            if attempt < self.max_retries - 1:
                await asyncio.sleep(2**attempt)

        raise last_error or AIClientError("All retries exhausted")
