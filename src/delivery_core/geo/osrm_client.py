import logging

import httpx

from delivery_core.core.exceptions import (
    NetworkError,
    ServiceUnavailableError,
    ValidationError,
)
from delivery_core.geo.distance import Coordinates
from delivery_core.settings import OSRMSettings

logger = logging.getLogger(__name__)


class NoRouteFoundError(ValidationError):
    """No route found between coordinates. Inherits from ValidationError (non-retryable)."""

    pass


class OSRMServiceError(ServiceUnavailableError):
    """OSRM service error (5xx). Inherits from ServiceUnavailableError (retryable)."""

    pass


class OSRMTimeoutError(NetworkError):
    """OSRM request timeout. Inherits from NetworkError (retryable)."""

    pass


class OSRMDistanceProvider:
    """Road distance provider backed by an OSRM routing server."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(
        cls, settings: OSRMSettings, transport: httpx.AsyncBaseTransport | None = None
    ) -> "OSRMDistanceProvider":
        return cls(settings.base_url, timeout=settings.timeout, transport=transport)

    async def calculate_distance_km(
        self, origin: Coordinates, destination: Coordinates
    ) -> float:
        """Driving distance between two coordinates in kilometers."""
        # OSRM expects lon,lat order
        url = (
            f"{self.base_url}/route/v1/driving/"
            f"{origin.longitude},{origin.latitude};"
            f"{destination.longitude},{destination.latitude}"
        )
        params = {"overview": "false"}

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise OSRMTimeoutError(f"Request timed out after {self.timeout}s") from e
        except httpx.TransportError as e:
            raise OSRMServiceError(f"Network error: {e}") from e

        if response.status_code >= 500:
            raise OSRMServiceError(f"OSRM server error: {response.status_code}")

        data = response.json()

        if data.get("code") == "NoRoute" or not data.get("routes"):
            raise NoRouteFoundError(
                "No route found between coordinates",
                details={"osrm_code": data.get("code")},
            )

        distance_meters = float(data["routes"][0]["distance"])
        logger.debug(f"OSRM route distance: {distance_meters:.0f} m")
        return distance_meters / 1000.0
