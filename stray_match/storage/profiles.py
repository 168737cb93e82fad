"""
Profile and bearer-token lookups.
"""

from datetime import datetime
from typing import Callable, Optional

from .db import DEFAULT_DB_PATH, get_connection
from .models import Profile


class ProfileRepository:
    """Reads ``profiles`` and ``auth_tokens``."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH, clock: Callable[[], datetime] = datetime.now):
        self.db_path = db_path
        self._clock = clock

    def get_profile(self, user_id: str) -> Optional[Profile]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT id, push_token, is_supporter, is_admin FROM profiles WHERE id = ?",
                (user_id,),
            ).fetchone()
        finally:
            conn.close()
        if not row:
            return None
        return Profile(id=row[0], push_token=row[1], is_supporter=bool(row[2]), is_admin=bool(row[3]))

    def get_push_token(self, user_id: str) -> Optional[str]:
        profile = self.get_profile(user_id)
        return profile.push_token if profile else None

    def resolve_token(self, token: str) -> Optional[str]:
        """Return the user id for an unexpired bearer token."""
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT user_id, expires_at FROM auth_tokens WHERE token = ?", (token,)
            ).fetchone()
        finally:
            conn.close()
        if not row:
            return None
        if row[1] and datetime.fromisoformat(row[1]) <= self._clock():
            return None
        return row[0]

    def upsert_profile(self, profile: Profile) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                """
                INSERT INTO profiles (id, push_token, is_supporter, is_admin)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    push_token = excluded.push_token,
                    is_supporter = excluded.is_supporter,
                    is_admin = excluded.is_admin
                """,
                (profile.id, profile.push_token, int(profile.is_supporter), int(profile.is_admin)),
            )
            conn.commit()
        finally:
            conn.close()

    def add_token(self, token: str, user_id: str, expires_at: Optional[datetime] = None) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                "INSERT OR REPLACE INTO auth_tokens (token, user_id, expires_at) VALUES (?, ?, ?)",
                (token, user_id, expires_at.isoformat() if expires_at else None),
            )
            conn.commit()
        finally:
            conn.close()
