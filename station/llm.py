"""Completion transport for the live generator.

``LLMGenerator`` only needs an async callable:

    async def __call__(self, operation: str, prompt: str) -> str: ...

``operation`` is the generator call being served ("prefetch_room",
"dialog_options", "station_response"); ``HttpLLM`` uses it for logging only.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal, NamedTuple, Protocol

import httpx

if TYPE_CHECKING:
    from station.config import Settings

logger = logging.getLogger(__name__)

ProviderFormat = Literal["koboldcpp", "openai"]


class LLM(Protocol):
    async def __call__(self, operation: str, prompt: str) -> str: ...


class LLMError(RuntimeError):
    """Transport or protocol failure talking to the completion backend."""


class _Endpoint(NamedTuple):
    path: str
    length_key: str  # request field capping the reply length
    results_key: str  # response list holding {"text": ...}


_ENDPOINTS: dict[str, _Endpoint] = {
    "koboldcpp": _Endpoint("/api/v1/generate", "max_length", "results"),
    "openai": _Endpoint("/v1/completions", "max_tokens", "choices"),
}


class HttpLLM:
    """Text-completion client for KoboldCpp or an OpenAI-compatible server.

    One request per call; nothing is retried here. The generator turns any
    ``LLMError`` into ``GeneratorUnavailable`` and the game carries on.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "koboldcpp",
        model: str = "",
        timeout: float = 120.0,
        max_tokens: int = 800,
    ) -> None:
        self.endpoint = _ENDPOINTS[provider_format]
        self.url = provider_url.rstrip("/") + self.endpoint.path
        self.provider_format = provider_format
        self.model = model
        self.timeout = timeout
        self.max_tokens = max_tokens
        self._api_key = api_key

    @classmethod
    def from_settings(cls, settings: Settings) -> HttpLLM:
        return cls(
            provider_url=settings.gm_provider_url,
            api_key=settings.gm_api_key,
            provider_format=settings.gm_provider_format,
            model=settings.gm_model,
            timeout=settings.gm_timeout,
        )

    def request_body(self, prompt: str) -> dict:
        body: dict = {"prompt": prompt, self.endpoint.length_key: self.max_tokens}
        if self.model and self.provider_format == "openai":
            body["model"] = self.model
        return body

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            return {"Content-Type": "application/json"}
        return {"Content-Type": "application/json", "Authorization": f"Bearer {self._api_key}"}

    def _completion_text(self, data: dict) -> str:
        try:
            return data[self.endpoint.results_key][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise LLMError(
                f"Unexpected response format from {self.provider_format} backend"
            ) from None

    async def __call__(self, operation: str, prompt: str) -> str:
        logger.debug("GM %s → %s (%d chars)", operation, self.url, len(prompt))
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(url=self.url, json=self.request_body(prompt),
                                         headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to the GM backend at {self.url}") from e
        except httpx.TimeoutException as e:
            raise LLMError(f"GM backend timed out after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(f"GM backend answered HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise LLMError(f"GM backend request failed: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise LLMError(f"GM backend sent a non-JSON body from {self.url}") from e
        text = self._completion_text(data)
        logger.debug("GM %s ← %d chars", operation, len(text))
        return text
