"""
Schema creation for all tables the pipeline reads or writes.
"""

from .db import DEFAULT_DB_PATH, get_connection

_TABLES = (
    """
    CREATE TABLE IF NOT EXISTS profiles (
        id TEXT PRIMARY KEY,
        display_name TEXT,
        push_token TEXT,
        is_supporter INTEGER NOT NULL DEFAULT 0,
        is_admin INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS auth_tokens (
        token TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES profiles(id),
        expires_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS animals (
        id TEXT PRIMARY KEY,
        user_id TEXT,
        animal_type TEXT NOT NULL,
        location TEXT,
        color TEXT,
        breed TEXT,
        description TEXT,
        image_url TEXT NOT NULL,
        spotted_at TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'spotted'
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS lost_animals (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        name TEXT NOT NULL,
        animal_type TEXT NOT NULL,
        location TEXT,
        color TEXT,
        breed TEXT,
        description TEXT,
        distinctive_features TEXT NOT NULL DEFAULT '[]',
        photo_url_1 TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'active',
        created_at TEXT NOT NULL
    )
    """,
    # Insert-only. The unique pair is what makes accept_if_new idempotent.
    """
    CREATE TABLE IF NOT EXISTS lost_animal_matches (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        lost_animal_id TEXT NOT NULL,
        sighting_id TEXT NOT NULL,
        confidence_score REAL NOT NULL,
        match_reason TEXT NOT NULL,
        created_at TEXT NOT NULL,
        viewed INTEGER NOT NULL DEFAULT 0,
        dismissed INTEGER NOT NULL DEFAULT 0,
        UNIQUE (lost_animal_id, sighting_id)
    )
    """,
    # Append-only usage ledger. No UPDATE or DELETE is ever issued against it.
    """
    CREATE TABLE IF NOT EXISTS ai_usage (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp TEXT NOT NULL,
        user_id TEXT NOT NULL,
        feature TEXT NOT NULL,
        model TEXT NOT NULL,
        prompt_tokens INTEGER NOT NULL,
        completion_tokens INTEGER NOT NULL,
        total_tokens INTEGER NOT NULL,
        cost_usd REAL NOT NULL,
        success INTEGER NOT NULL,
        request_id TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_ai_usage_user_time ON ai_usage (user_id, timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_animals_type_time ON animals (animal_type, spotted_at)",
    "CREATE INDEX IF NOT EXISTS idx_lost_animals_type_status ON lost_animals (animal_type, status)",
)


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create every table if it doesn't exist.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        for statement in _TABLES:
            conn.execute(statement)
        conn.commit()
    finally:
        conn.close()
