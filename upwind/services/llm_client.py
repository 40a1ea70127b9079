from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Protocol

import httpx

from upwind.config import AdvisoryConfig, app_config
from upwind.errors import ConfigurationError, ProviderError
from upwind.http_client import ProviderHttpClient
from upwind.logging import get_logger

logger = get_logger(__name__)

PROVIDER_NAME = "anthropic"


class AdvisoryProvider(Protocol):
    async def complete(self, request_text: str) -> str:
        ...


def _first_text_block(data: Any) -> Optional[str]:
    if not isinstance(data, Mapping):
        return None
    for item in data.get("content") or []:
        if isinstance(item, Mapping) and item.get("type") == "text":
            text = item.get("text")
            if isinstance(text, str):
                return text
    return None


class LLMClient:
    """Client for the Anthropic Messages API used to draft reschedule advice."""

    def __init__(
        self,
        config: Optional[AdvisoryConfig] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config or app_config.advisory
        self.base_url = self.config.base_url.rstrip("/")
        self.http = ProviderHttpClient(PROVIDER_NAME, client, timeout=self.config.timeout)
        logger.info(
            "llm.client_initialized",
            base_url=self.base_url,
            model=self.config.model,
            timeout=self.config.timeout,
        )

    def _headers(self) -> Dict[str, str]:
        if not self.config.api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY is not configured")
        return {
            "x-api-key": self.config.api_key,
            "anthropic-version": self.config.api_version,
            "content-type": "application/json",
        }

    async def complete(self, request_text: str) -> str:
        payload = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "messages": [{"role": "user", "content": request_text}],
        }
        data = await self.http.post_json(f"{self.base_url}/v1/messages", payload=payload, headers=self._headers())

        text = _first_text_block(data)
        if text is None:
            raise ProviderError(
                "Advisory response did not include text content",
                provider=PROVIDER_NAME,
                detail=data,
            )
        logger.debug("llm.response", model=self.config.model, length=len(text))
        return text

    async def aclose(self) -> None:
        await self.http.aclose()


__all__ = ["AdvisoryProvider", "LLMClient"]
