import logging
from typing import Optional

import httpx

from eventchat.schemas.user_schema import UserLocation
from eventchat.utils.config import GEOAPIFY_API_KEY, GEOCODE_TIMEOUT_SECONDS
from eventchat.utils.retry import get_json_with_retry

logger = logging.getLogger(__name__)

GEOAPIFY_REVERSE_URL = "https://api.geoapify.com/v1/geocode/reverse"


class LocationAgent:
    """Reverse geocoding of browser coordinates into a city/region/country."""

    def __init__(self, api_key: Optional[str] = GEOAPIFY_API_KEY, timeout: float = GEOCODE_TIMEOUT_SECONDS,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    async def reverse_geocode(self, lat: float, lon: float) -> Optional[UserLocation]:
        if not self.api_key:
            # Coordinates alone are still useful to the caller.
            return UserLocation(lat=lat, lon=lon)
        params = {"lat": lat, "lon": lon, "format": "json", "apiKey": self.api_key}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                data = await get_json_with_retry(client, GEOAPIFY_REVERSE_URL, params=params)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Reverse geocoding failed for (%s, %s): %s", lat, lon, exc)
            return None
        results = data.get("results") or []
        if not results:
            return None
        top = results[0]
        return UserLocation(
            city=top.get("city") or top.get("town") or top.get("village"),
            region=top.get("state") or top.get("county"),
            country=top.get("country"),
            address=top.get("formatted"),
            lat=lat,
            lon=lon,
        )
