"""
Repository pattern for usage-ledger access.

Handles the append-only ``ai_usage`` table the rate limiter counts against.
"""

from datetime import datetime
from typing import List, Optional, Tuple

from .db import DEFAULT_DB_PATH, get_connection
from .models import UsageEvent

_COLUMNS = (
    "timestamp, user_id, feature, model, prompt_tokens, completion_tokens, "
    "total_tokens, cost_usd, success, request_id"
)


def _row_to_event(row) -> UsageEvent:
    return UsageEvent(
        timestamp=datetime.fromisoformat(row[0]),
        user_id=row[1],
        feature=row[2],
        model=row[3],
        prompt_tokens=row[4],
        completion_tokens=row[5],
        total_tokens=row[6],
        cost=row[7],
        success=bool(row[8]),
        request_id=row[9],
    )


class UsageRepository:
    """Repository for reading the usage ledger.

    Every method opens its own connection, so one instance can be shared
    by worker threads.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def count_since(self, user_id: str, since: datetime) -> Tuple[int, Optional[datetime]]:
        """Count a user's events at or after ``since``.

        Returns:
            Tuple of (event count, timestamp of the oldest counted event)
        """
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT COUNT(*), MIN(timestamp) FROM ai_usage "
                "WHERE user_id = ? AND timestamp >= ?",
                (user_id, since.isoformat()),
            ).fetchone()
            oldest = datetime.fromisoformat(row[1]) if row[1] else None
            return row[0] or 0, oldest
        finally:
            conn.close()

    def get_recent_events(
        self,
        user_id: Optional[str] = None,
        feature: Optional[str] = None,
        limit: int = 100
    ) -> List[UsageEvent]:
        """Get recent usage events with optional filtering.

        Args:
            user_id: Optional filter for a specific user
            feature: Optional filter for a specific feature
            limit: Maximum number of events to return

        Returns:
            List of usage events ordered by timestamp (newest first)
        """
        conn = get_connection(self.db_path)
        try:
            query = f"SELECT {_COLUMNS} FROM ai_usage"
            params: list = []
            conditions = []

            if user_id:
                conditions.append("user_id = ?")
                params.append(user_id)
            if feature:
                conditions.append("feature = ?")
                params.append(feature)

            if conditions:
                query += " WHERE " + " AND ".join(conditions)

            query += " ORDER BY timestamp DESC LIMIT ?"
            params.append(limit)

            return [_row_to_event(row) for row in conn.execute(query, params).fetchall()]
        finally:
            conn.close()


def insert_usage_event(event: UsageEvent, db_path: str = DEFAULT_DB_PATH) -> None:
    """Insert a single usage event into the append-only ledger.

    Args:
        event: The usage event to record
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute(f"""
            INSERT INTO ai_usage ({_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            event.timestamp.isoformat(),
            event.user_id,
            event.feature,
            event.model,
            event.prompt_tokens,
            event.completion_tokens,
            event.total_tokens,
            event.cost,
            int(event.success),
            event.request_id
        ))
        conn.commit()
    finally:
        conn.close()
