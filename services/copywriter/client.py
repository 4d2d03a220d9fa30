"""
Copy Writer

Stateless script/caption/hashtag generation for a render brief, through an
OpenAI-compatible chat completions endpoint.

Usage:
    writer = CopyWriter(config.copy)
    draft = await writer.generate_copy("15s coffee shop ad")
    print(draft.caption, draft.hashtags)
"""

import asyncio
import json
import logging
import re
from typing import Any, Optional

import httpx
from pydantic import BaseModel, Field, field_validator
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from core.circuit_breaker import CircuitBreaker, CircuitBreakerOpen, breaker_for
from core.config import CopyConfig
from core.errors import ConfigurationError, TransportError, UpstreamContractError, ValidationError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You generate short social video copy. Reply strictly as compact JSON with keys: "
    "script, caption, hashtags (array of short tags without #)."
)

_FENCE_OPEN = re.compile(r"^\s*```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```\s*$")


class CopyDraft(BaseModel):
    """Generated copy for one brief."""
    script: str = ""
    caption: str = ""
    hashtags: list[str] = Field(default_factory=list)

    @field_validator("script", "caption", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("hashtags", mode="before")
    @classmethod
    def _tags(cls, value: Any) -> list[str]:
        if not isinstance(value, list):
            return []
        tags = []
        for tag in value:
            text = str(tag).strip()
            if text:
                tags.append(text if text.startswith("#") else f"#{text}")
        return tags


def user_prompt(prompt: str) -> str:
    return f'Create script, caption, and 10 hashtags for this idea: "{prompt}".\nReturn JSON only.'


def parse_draft(content: str) -> CopyDraft:
    """
    Parse the assistant message into a CopyDraft, tolerating code fences.

    Raises:
        UpstreamContractError: the message is not a JSON object
    """
    text = (content or "").strip() or "{}"
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        cleaned = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", text))
        try:
            parsed = json.loads(cleaned)
        except json.JSONDecodeError as e:
            raise UpstreamContractError(
                f"openai: reply is not JSON: {text[:120]!r}",
                error_code="BAD_COPY_JSON",
                provider="openai",
            ) from e

    if not isinstance(parsed, dict):
        raise UpstreamContractError(
            "openai: reply is not a JSON object", error_code="BAD_COPY_JSON", provider="openai"
        )
    return CopyDraft.model_validate(parsed)


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, TransportError) and exc.retryable


class CopyWriter:
    """Chat-completions client for social copy."""

    def __init__(
        self,
        config: CopyConfig,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.config = config
        self.timeout = timeout
        self._http_client = client
        self._owns_client = client is None
        self._breaker = breaker or breaker_for("openai", timeout)

    @property
    def configured(self) -> bool:
        return bool(self.config.api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self):
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _post(self, payload: dict) -> httpx.Response:
        client = await self._get_client()
        try:
            response = await client.post(
                f"{self.config.api_base.rstrip('/')}/chat/completions",
                headers={
                    "Authorization": f"Bearer {self.config.api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
            )
        except httpx.TimeoutException as e:
            raise TransportError("openai: timeout", error_code="TIMEOUT", provider="openai") from e
        except httpx.RequestError as e:
            raise TransportError(
                f"openai: request failed: {e}", error_code="REQUEST_ERROR", provider="openai"
            ) from e

        if not response.is_success:
            raise TransportError(
                f"OpenAI error: {response.text[:200]}",
                error_code=f"HTTP_{response.status_code}",
                provider="openai",
                status_code=response.status_code,
            )
        return response

    @retry(
        retry=retry_if_exception(_is_retryable),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    async def _complete(self, prompt: str) -> str:
        payload = {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt(prompt)},
            ],
            "temperature": self.config.temperature,
        }
        try:
            response = await self._breaker.call(self._post, payload)
        except CircuitBreakerOpen as e:
            raise TransportError(str(e), error_code="CIRCUIT_OPEN", provider="openai") from e
        except asyncio.TimeoutError as e:
            raise TransportError("openai: timeout", error_code="TIMEOUT", provider="openai") from e

        try:
            data = response.json()
        except ValueError as e:
            raise TransportError(
                "openai: response is not JSON", error_code="BAD_JSON", provider="openai"
            ) from e

        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            return ""

    async def generate_copy(self, prompt: str) -> CopyDraft:
        """
        Generate a script, a caption and hashtags for ``prompt``.

        Raises:
            ValidationError: empty prompt
            ConfigurationError: no API key configured
            TransportError: the completion call failed
            UpstreamContractError: the model did not reply with a JSON object
        """
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValidationError("Missing prompt", error_code="EMPTY_PROMPT")
        if not self.configured:
            raise ConfigurationError(
                "OPENAI_API_KEY missing", error_code="MISSING_CREDENTIALS", provider="openai"
            )

        logger.info(f"Generating copy with {self.config.model}: {prompt[:50]}...")
        content = await self._complete(prompt.strip())
        draft = parse_draft(content)
        logger.info(f"Copy generated: {len(draft.hashtags)} hashtags")
        return draft
