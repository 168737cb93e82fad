"""
Match persistence.

The ``lost_animal_matches`` table is insert-only and unique on
(lost_animal_id, sighting_id). Retried or redelivered orchestrator runs hit
that constraint and are absorbed here rather than surfacing as errors.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List

from stray_match.core.errors import PersistenceConflict
from stray_match.logging_config import get_logger

from .db import DEFAULT_DB_PATH, get_connection
from .models import MatchResult

logger = get_logger(__name__)

ACCEPTANCE_THRESHOLD = 80.0


@dataclass(frozen=True)
class AcceptResult:
    """Outcome of ``MatchStore.accept_if_new``."""
    accepted: bool
    inserted: bool


class MatchStore:
    """Idempotent writer and reader for accepted matches."""

    def __init__(
        self,
        db_path: str = DEFAULT_DB_PATH,
        threshold: float = ACCEPTANCE_THRESHOLD,
        clock: Callable[[], datetime] = datetime.now
    ):
        if not 0 <= threshold <= 100:
            raise ValueError("threshold must be between 0 and 100")
        self.db_path = db_path
        self.threshold = threshold
        self._clock = clock

    def accept_if_new(
        self,
        lost_animal_id: str,
        sighting_id: str,
        confidence: float,
        reason: str
    ) -> AcceptResult:
        """Persist a match if it clears the threshold and is not stored yet.

        Args:
            lost_animal_id: Lost report id
            sighting_id: Sighting id
            confidence: Score in [0, 100]; the threshold is inclusive
            reason: Free-text explanation from the analyzer

        Returns:
            AcceptResult; ``inserted`` is True only for the first write
        """
        if confidence < self.threshold:
            return AcceptResult(accepted=False, inserted=False)

        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO lost_animal_matches
                (lost_animal_id, sighting_id, confidence_score, match_reason, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (lost_animal_id, sighting_id, float(confidence), reason, self._clock().isoformat()),
            )
            conn.commit()
            inserted = cursor.rowcount == 1
        finally:
            conn.close()

        if not inserted:
            conflict = PersistenceConflict(lost_animal_id, sighting_id)
            logger.info(f"{conflict}; keeping existing row")
        return AcceptResult(accepted=True, inserted=inserted)

    def has_match(self, lost_animal_id: str, sighting_id: str) -> bool:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT 1 FROM lost_animal_matches WHERE lost_animal_id = ? AND sighting_id = ?",
                (lost_animal_id, sighting_id),
            ).fetchone()
            return row is not None
        finally:
            conn.close()

    def list_matches(self, lost_animal_id: str, include_dismissed: bool = False) -> List[MatchResult]:
        """Matches for a lost report, highest confidence first."""
        query = (
            "SELECT lost_animal_id, sighting_id, confidence_score, match_reason, "
            "created_at, viewed, dismissed FROM lost_animal_matches WHERE lost_animal_id = ?"
        )
        if not include_dismissed:
            query += " AND dismissed = 0"
        query += " ORDER BY confidence_score DESC, created_at ASC"

        conn = get_connection(self.db_path)
        try:
            return [
                MatchResult(
                    lost_animal_id=row[0],
                    sighting_id=row[1],
                    confidence=row[2],
                    reason=row[3],
                    created_at=datetime.fromisoformat(row[4]),
                    viewed=bool(row[5]),
                    dismissed=bool(row[6]),
                )
                for row in conn.execute(query, (lost_animal_id,)).fetchall()
            ]
        finally:
            conn.close()
