"""
Geographic helpers.

Locations are stored as WKT points, ``POINT(<lng> <lat>)``, the text form
a geography column renders to.
"""

import math
import re
from dataclasses import dataclass
from typing import Optional

EARTH_RADIUS_KM = 6371.0

_POINT_RE = re.compile(
    r"^\s*(?:SRID=\d+;)?\s*POINT\s*\(\s*([-+0-9.eE]+)\s+([-+0-9.eE]+)\s*\)\s*$",
    re.IGNORECASE,
)


class CoordinateDecodeError(ValueError):
    """Raised when a stored location cannot be decoded into coordinates."""


@dataclass(frozen=True)
class Coordinates:
    """A latitude/longitude pair in decimal degrees."""
    latitude: float
    longitude: float

    def __post_init__(self):
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"longitude out of range: {self.longitude}")


def parse_point(location: Optional[str]) -> Coordinates:
    """Decode a WKT point into coordinates.

    Raises:
        CoordinateDecodeError: If the value is empty or not a valid point
    """
    if not location:
        raise CoordinateDecodeError("location is empty")
    match = _POINT_RE.match(location)
    if not match:
        raise CoordinateDecodeError(f"unsupported location format: {location!r}")
    try:
        return Coordinates(latitude=float(match.group(2)), longitude=float(match.group(1)))
    except ValueError as e:
        raise CoordinateDecodeError(str(e)) from e


def format_point(coords: Coordinates) -> str:
    """Encode coordinates as a WKT point (longitude first)."""
    return f"POINT({coords.longitude} {coords.latitude})"


def haversine_km(a: Coordinates, b: Coordinates) -> float:
    """Great-circle distance between two points in kilometres."""
    d_lat = math.radians(b.latitude - a.latitude)
    d_lng = math.radians(b.longitude - a.longitude)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.latitude))
        * math.cos(math.radians(b.latitude))
        * math.sin(d_lng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))
