"""
Reverse geocoding through the Nominatim HTTP API.
"""

import logging
import httpx

from tmd.config import settings

logger = logging.getLogger(__name__)


def format_coordinates(latitude: float, longitude: float) -> str:
    return f"Lat: {latitude:.6f}, Long: {longitude:.6f}"


class GeocodingService:
    """座標轉地址"""

    def __init__(self, client: httpx.AsyncClient = None):
        self.client = client

    async def reverse(self, latitude: float, longitude: float) -> str:
        """
        取得座標對應的地址，失敗時回傳座標字串。

        Args:
            latitude: 緯度
            longitude: 經度

        Returns:
            地址字串
        """
        fallback = format_coordinates(latitude, longitude)
        if not settings.REVERSE_GEOCODING_ENABLED:
            return fallback

        params = {"format": "json", "lat": latitude, "lon": longitude, "addressdetails": 1}
        headers = {"User-Agent": settings.GEOCODING_USER_AGENT}
        try:
            if self.client is not None:
                response = await self.client.get(settings.NOMINATIM_URL, params=params, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=settings.GEOCODING_TIMEOUT) as client:
                    response = await client.get(settings.NOMINATIM_URL, params=params, headers=headers)
            response.raise_for_status()
            address = response.json().get("display_name")
            return address or fallback
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Reverse geocoding failed for {fallback}: {str(e)}")
            return fallback
