"""
Database connection management.

Provides SQLite connection for data persistence.
"""

import sqlite3
from pathlib import Path
from typing import Optional

from stray_match.core.geo import Coordinates, CoordinateDecodeError, haversine_km, parse_point

DEFAULT_DB_PATH = "stray_match.db"


def _distance_km(location: Optional[str], lat: float, lng: float) -> Optional[float]:
    """SQL function: distance from a stored WKT point to (lat, lng).

    Rows whose location cannot be decoded yield NULL and drop out of
    distance predicates.
    """
    try:
        point = parse_point(location)
    except CoordinateDecodeError:
        return None
    return haversine_km(point, Coordinates(latitude=lat, longitude=lng))


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create and return a SQLite database connection with foreign keys enabled.

    The connection also carries the ``distance_km(location, lat, lng)``
    function used by spatial candidate queries.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection with foreign key constraints enabled
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path))
    conn.execute("PRAGMA foreign_keys = ON")
    conn.create_function("distance_km", 3, _distance_km, deterministic=True)
    return conn
