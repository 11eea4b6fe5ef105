"""Great-circle distance calculations and the distance provider contract.

Fare quotes only need a distance in kilometres between pickup and dropoff.
Where that distance comes from is pluggable: any object with an async
``calculate_distance_km(origin, destination)`` method will do. The haversine
provider here needs no network and is the default.
"""

from math import atan2, cos, radians, sin, sqrt
from typing import Protocol

from pydantic import BaseModel, Field

EARTH_RADIUS_KM = 6371.0


class Coordinates(BaseModel):
    """A WGS84 point."""

    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)

    def as_tuple(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)


class DistanceProvider(Protocol):
    async def calculate_distance_km(
        self, origin: Coordinates, destination: Coordinates
    ) -> float | None: ...


def haversine_distance_km(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
) -> float:
    """Calculate the great-circle distance between two points in kilometers.

    Args:
        lat1: Latitude of first point in degrees
        lon1: Longitude of first point in degrees
        lat2: Latitude of second point in degrees
        lon2: Longitude of second point in degrees

    Returns:
        Distance between the two points in kilometers
    """
    lat1, lon1, lat2, lon2 = map(radians, [lat1, lon1, lat2, lon2])
    dlat = lat2 - lat1
    dlon = lon2 - lon1

    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))

    return EARTH_RADIUS_KM * c


class HaversineDistanceProvider:
    """Straight-line distance provider; never touches the network."""

    async def calculate_distance_km(
        self, origin: Coordinates, destination: Coordinates
    ) -> float:
        return haversine_distance_km(
            origin.latitude, origin.longitude, destination.latitude, destination.longitude
        )
