from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Protocol

import httpx

from upwind.config import WeatherConfig, app_config
from upwind.errors import ConfigurationError, ProviderError
from upwind.http_client import ProviderHttpClient
from upwind.services.forecast import ENTRIES_PER_DAY, clamp_days

PROVIDER_NAME = "openweather"


class WeatherProvider(Protocol):
    async def fetch_current(self, lat: float, lon: float) -> Mapping[str, Any]:
        ...

    async def fetch_forecast(self, lat: float, lon: float) -> List[Mapping[str, Any]]:
        ...


class OpenWeatherProvider:
    """Fetches raw current conditions and 3-hourly forecasts from OpenWeather.

    Payloads are returned untouched; normalization happens in the core. A
    missing API key is reported as :class:`ConfigurationError` on first use
    rather than at construction so the rest of the app can start without it.
    """

    def __init__(
        self,
        config: Optional[WeatherConfig] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        forecast_days: int = 7,
    ) -> None:
        self.config = config or app_config.weather
        self.forecast_days = clamp_days(forecast_days)
        self.http = ProviderHttpClient(PROVIDER_NAME, client, timeout=self.config.timeout)

    def _params(self, lat: float, lon: float, **extra: Any) -> Dict[str, Any]:
        if not self.config.api_key:
            raise ConfigurationError("OPENWEATHER_API_KEY is not configured")
        return {
            "lat": lat,
            "lon": lon,
            "appid": self.config.api_key,
            "units": self.config.units,
            **extra,
        }

    async def fetch_current(self, lat: float, lon: float) -> Mapping[str, Any]:
        data = await self.http.get_json(f"{self.config.base_url.rstrip('/')}/weather", params=self._params(lat, lon))
        if not isinstance(data, Mapping):
            raise ProviderError("Unexpected current weather payload", provider=PROVIDER_NAME, detail=data)
        return data

    async def fetch_forecast(self, lat: float, lon: float) -> List[Mapping[str, Any]]:
        params = self._params(lat, lon, cnt=self.forecast_days * ENTRIES_PER_DAY)
        data = await self.http.get_json(f"{self.config.base_url.rstrip('/')}/forecast", params=params)
        entries = data.get("list") if isinstance(data, Mapping) else None
        return list(entries) if isinstance(entries, list) else []

    async def aclose(self) -> None:
        await self.http.aclose()
