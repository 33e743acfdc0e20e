from __future__ import annotations

from geopy.distance import great_circle

from ..models.matching import Coordinates


def distance_km(origin: Coordinates, destination: Coordinates) -> float:
    """Great-circle distance in kilometres between two (longitude, latitude) pairs."""
    origin_lon, origin_lat = origin
    dest_lon, dest_lat = destination
    return great_circle((origin_lat, origin_lon), (dest_lat, dest_lon)).km
