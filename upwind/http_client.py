from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from .errors import ProviderError
from .logging import get_logger

logger = get_logger(__name__)


DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; UpwindScheduler/1.0)"


def _response_detail(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text[:200]


class ProviderHttpClient:
    """Async httpx wrapper that turns transport failures into :class:`ProviderError`.

    Every request is bounded by the client timeout. Failures are not retried;
    retry policy belongs to the caller.
    """

    def __init__(
        self,
        provider: str,
        client: Optional[httpx.AsyncClient] = None,
        *,
        timeout: float = 10.0,
    ) -> None:
        self.provider = provider
        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": DEFAULT_USER_AGENT},
        )

    async def get_json(
        self, url: str, *, params: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None
    ) -> Any:
        return await self._request("GET", url, params=params, headers=headers)

    async def post_json(
        self, url: str, *, payload: Any, headers: Optional[Dict[str, str]] = None
    ) -> Any:
        return await self._request("POST", url, json=payload, headers=headers)

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        logger.info("http.request", provider=self.provider, method=method, url=url)
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("http.timeout", provider=self.provider, url=url)
            raise ProviderError(f"{self.provider} request timed out", provider=self.provider) from exc
        except httpx.HTTPError as exc:
            logger.warning("http.error", provider=self.provider, url=url, error=str(exc))
            raise ProviderError(
                f"{self.provider} request failed: {type(exc).__name__}: {exc}", provider=self.provider
            ) from exc

        if response.is_error:
            detail = _response_detail(response)
            logger.warning(
                "http.status_error",
                provider=self.provider,
                url=url,
                status_code=response.status_code,
            )
            raise ProviderError(
                f"{self.provider} responded with {response.status_code}",
                provider=self.provider,
                status_code=response.status_code,
                detail=detail,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(
                f"{self.provider} returned a non-JSON body",
                provider=self.provider,
                status_code=response.status_code,
                detail=response.text[:200],
            ) from exc

    async def aclose(self) -> None:
        await self.client.aclose()
