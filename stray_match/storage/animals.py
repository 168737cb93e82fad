"""
Read access to sightings and lost-animal reports.

Both tables are owned by the reporting flow; the insert helpers exist for
seeding and tests.
"""

import json
from datetime import datetime
from enum import Enum
from typing import List, Optional, Union

from stray_match.core.geo import Coordinates

from .db import DEFAULT_DB_PATH, get_connection
from .models import AnimalRecord, AnimalType, LostAnimalRecord

AnyRecord = Union[AnimalRecord, LostAnimalRecord]


class SearchTarget(Enum):
    """Which side of the match a candidate query returns."""
    SIGHTINGS = "sightings"
    LOST_REPORTS = "lost_reports"


_SIGHTING_COLUMNS = (
    "id, user_id, animal_type, location, color, breed, description, "
    "image_url, spotted_at, status"
)
_LOST_COLUMNS = (
    "id, user_id, name, animal_type, location, color, breed, description, "
    "distinctive_features, photo_url_1, status, created_at"
)


def _row_to_sighting(row) -> AnimalRecord:
    return AnimalRecord(
        id=row[0],
        user_id=row[1],
        animal_type=AnimalType(row[2]),
        location=row[3],
        color=row[4],
        breed=row[5],
        description=row[6],
        photo_ref=row[7],
        spotted_at=datetime.fromisoformat(row[8]),
        status=row[9],
    )


def _row_to_lost(row) -> LostAnimalRecord:
    features = json.loads(row[8]) if row[8] else []
    return LostAnimalRecord(
        id=row[0],
        owner_id=row[1],
        name=row[2],
        animal_type=AnimalType(row[3]),
        location=row[4],
        color=row[5],
        breed=row[6],
        description=row[7],
        distinctive_features=tuple(features),
        photo_ref=row[9],
        status=row[10],
        created_at=datetime.fromisoformat(row[11]),
    )


class AnimalRepository:
    """Queries over the ``animals`` and ``lost_animals`` tables."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def get_sighting(self, sighting_id: str) -> Optional[AnimalRecord]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                f"SELECT {_SIGHTING_COLUMNS} FROM animals WHERE id = ?", (sighting_id,)
            ).fetchone()
            return _row_to_sighting(row) if row else None
        finally:
            conn.close()

    def get_lost_animal(self, lost_animal_id: str) -> Optional[LostAnimalRecord]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                f"SELECT {_LOST_COLUMNS} FROM lost_animals WHERE id = ?", (lost_animal_id,)
            ).fetchone()
            return _row_to_lost(row) if row else None
        finally:
            conn.close()

    def find_nearby(
        self,
        target: SearchTarget,
        origin: Coordinates,
        radius_km: float,
        animal_type: AnimalType,
        since: Optional[datetime] = None,
        limit: int = 50
    ) -> List[AnyRecord]:
        """Spatial query: records of ``animal_type`` within ``radius_km``.

        Results are nearest first. Rows whose location cannot be decoded
        are excluded.
        """
        table, columns, time_column, converter = self._target(target)
        query = (
            f"SELECT {columns} FROM {table} "
            "WHERE animal_type = ? AND distance_km(location, ?, ?) <= ?"
        )
        params: list = [animal_type.value, origin.latitude, origin.longitude, radius_km]
        query, params = self._narrow(target, query, params, time_column, since)
        query += " ORDER BY distance_km(location, ?, ?) ASC LIMIT ?"
        params.extend([origin.latitude, origin.longitude, limit])

        conn = get_connection(self.db_path)
        try:
            return [converter(row) for row in conn.execute(query, params).fetchall()]
        finally:
            conn.close()

    def scan(
        self,
        target: SearchTarget,
        animal_type: AnimalType,
        since: Optional[datetime] = None,
        limit: int = 50
    ) -> List[AnyRecord]:
        """Same type/time predicate as ``find_nearby`` without the radius."""
        table, columns, time_column, converter = self._target(target)
        query = f"SELECT {columns} FROM {table} WHERE animal_type = ?"
        params: list = [animal_type.value]
        query, params = self._narrow(target, query, params, time_column, since)
        query += f" ORDER BY {time_column} DESC LIMIT ?"
        params.append(limit)

        conn = get_connection(self.db_path)
        try:
            return [converter(row) for row in conn.execute(query, params).fetchall()]
        finally:
            conn.close()

    @staticmethod
    def _target(target: SearchTarget):
        if target == SearchTarget.SIGHTINGS:
            return "animals", _SIGHTING_COLUMNS, "spotted_at", _row_to_sighting
        return "lost_animals", _LOST_COLUMNS, "created_at", _row_to_lost

    @staticmethod
    def _narrow(target, query, params, time_column, since):
        if target == SearchTarget.LOST_REPORTS:
            query += " AND status = 'active'"
        if since is not None:
            query += f" AND {time_column} >= ?"
            params.append(since.isoformat())
        return query, params

    def insert_sighting(self, record: AnimalRecord) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                f"INSERT INTO animals ({_SIGHTING_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    record.id,
                    record.user_id,
                    record.animal_type.value,
                    record.location,
                    record.color,
                    record.breed,
                    record.description,
                    record.photo_ref,
                    record.spotted_at.isoformat(),
                    record.status,
                ),
            )
            conn.commit()
        finally:
            conn.close()

    def insert_lost_animal(self, record: LostAnimalRecord) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                f"INSERT INTO lost_animals ({_LOST_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    record.id,
                    record.owner_id,
                    record.name,
                    record.animal_type.value,
                    record.location,
                    record.color,
                    record.breed,
                    record.description,
                    json.dumps(list(record.distinctive_features)),
                    record.photo_ref,
                    record.status,
                    record.created_at.isoformat(),
                ),
            )
            conn.commit()
        finally:
            conn.close()
