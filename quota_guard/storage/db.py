"""
Database connection management.

Provides SQLite connection and schema for the quota record table.
"""

import sqlite3
from pathlib import Path


DEFAULT_DB_PATH = "quota_guard.db"


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create and return a SQLite database connection.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection with a busy timeout so a second writer waits
        for the lock instead of failing immediately
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path), timeout=5.0)
    conn.execute("PRAGMA busy_timeout = 5000")
    return conn


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the quota_record key/value table if it doesn't exist.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS quota_record (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        conn.commit()
    finally:
        conn.close()
