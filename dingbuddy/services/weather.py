"""Open-Meteo client: geocoding and forecasts."""

import logging
import math
from typing import Any

import httpx

from dingbuddy.db.models import Place

logger = logging.getLogger(__name__)

GEOCODING_URL = "https://geocoding-api.open-meteo.com/v1/search"
FORECAST_URL = "https://api.open-meteo.com/v1/forecast"

CURRENT_FIELDS = [
    "temperature_2m",
    "relative_humidity_2m",
    "apparent_temperature",
    "is_day",
    "precipitation",
    "rain",
    "showers",
    "snowfall",
    "weather_code",
    "cloud_cover",
    "pressure_msl",
    "wind_speed_10m",
    "wind_direction_10m",
    "wind_gusts_10m",
]

DAILY_FIELDS = [
    "temperature_2m_max",
    "temperature_2m_min",
    "precipitation_sum",
    "rain_sum",
    "showers_sum",
    "snowfall_sum",
    "precipitation_probability_max",
    "sunrise",
    "sunset",
    "uv_index_max",
    "wind_speed_10m_max",
    "wind_gusts_10m_max",
    "wind_direction_10m_dominant",
]


def _finite(value: Any) -> float | None:
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


def parse_geocoding(query: str, data: Any) -> list[Place]:
    """Turn a geocoding response into places; results without coordinates are dropped."""
    if not isinstance(data, dict):
        return []

    places = []
    for result in data.get("results") or []:
        if not isinstance(result, dict):
            continue
        latitude = _finite(result.get("latitude"))
        longitude = _finite(result.get("longitude"))
        if latitude is None or longitude is None:
            continue

        name = (result.get("name") or "").strip() or query
        parts = [name, (result.get("admin1") or "").strip(), (result.get("country") or "").strip()]
        places.append(
            Place(
                query=query,
                label=" · ".join(p for p in parts if p),
                latitude=latitude,
                longitude=longitude,
                timezone=(result.get("timezone") or "").strip() or "UTC",
            )
        )
    return places


class OpenMeteoClient:
    """Geocode place names and fetch forecasts in the place's own time zone."""

    def __init__(self, timeout: float = 8.0, transport: httpx.AsyncBaseTransport | None = None):
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def geocode(self, query: str, count: int = 3) -> list[Place]:
        query = (query or "").strip()
        if not query:
            return []

        async with self._client() as client:
            response = await client.get(
                GEOCODING_URL,
                params={"name": query, "count": count, "language": "zh", "format": "json"},
            )
            response.raise_for_status()
            data = response.json()

        places = parse_geocoding(query, data)
        logger.debug(f"Geocoded {query!r}: {len(places)} candidates")
        return places

    async def fetch_forecast(self, place: Place) -> dict[str, Any]:
        async with self._client() as client:
            response = await client.get(
                FORECAST_URL,
                params={
                    "latitude": place.latitude,
                    "longitude": place.longitude,
                    "timezone": place.timezone,
                    "current": ",".join(CURRENT_FIELDS),
                    "daily": ",".join(DAILY_FIELDS),
                },
            )
            response.raise_for_status()
            data = response.json()
        return data if isinstance(data, dict) else {}
