import sqlite3
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, List, Optional
from contextlib import contextmanager
from pathlib import Path

from config import config

logger = logging.getLogger(__name__)

def _utcnow() -> datetime:
    # Naive UTC, comparable with SQLite's CURRENT_TIMESTAMP
    return datetime.now(timezone.utc).replace(tzinfo=None)

class Database:
    def __init__(self, db_path: str = None, ttl_hours: int = None):
        self.db_path = db_path or config.DATABASE_URL.replace("sqlite:///", "")
        self.ttl = timedelta(hours=ttl_hours if ttl_hours is not None else config.SESSION_TTL_HOURS)
        self._init_db()

    def _init_db(self):
        """Initialize database schema"""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        with self.get_connection() as conn:
            cursor = conn.cursor()

            # Draft sessions live only until they expire
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    session_id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    expires_at TIMESTAMP
                )
            """)

            # Create index for faster lookups
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_sessions_expires
                ON sessions(expires_at)
            """)

            conn.commit()
            logger.info("Database initialized successfully")

    @contextmanager
    def get_connection(self):
        """Get database connection context manager"""
        conn = sqlite3.connect(
            self.db_path,
            timeout=30.0,
            isolation_level=None
        )
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _expiry(self) -> str:
        return (_utcnow() + self.ttl).isoformat(sep=" ")

    def create_session(self, session_id: str, initial_data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a new session"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                INSERT OR REPLACE INTO sessions (session_id, data, expires_at)
                VALUES (?, ?, ?)
            """, (session_id, json.dumps(initial_data), self._expiry()))

        logger.info(f"Created session: {session_id}")
        return initial_data

    def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Get session data"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT data, expires_at FROM sessions
                WHERE session_id = ?
            """, (session_id,))

            row = cursor.fetchone()
            if not row:
                return None

            # Check if session is expired
            expires_at = datetime.fromisoformat(row['expires_at'])
            if expires_at < _utcnow():
                self.delete_session(session_id)
                return None

            return json.loads(row['data'])

    def update_session(self, session_id: str, data: Dict[str, Any]) -> bool:
        """Update session data and push back its expiry"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                UPDATE sessions
                SET data = ?, updated_at = CURRENT_TIMESTAMP, expires_at = ?
                WHERE session_id = ?
            """, (json.dumps(data), self._expiry(), session_id))

            return cursor.rowcount > 0

    def delete_session(self, session_id: str) -> bool:
        """Delete a session"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                DELETE FROM sessions WHERE session_id = ?
            """, (session_id,))

            return cursor.rowcount > 0

    def cleanup_expired_sessions(self) -> int:
        """Clean up expired sessions"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                DELETE FROM sessions
                WHERE expires_at < ?
            """, (_utcnow().isoformat(sep=" "),))

            deleted = cursor.rowcount
            if deleted > 0:
                logger.info(f"Cleaned up {deleted} expired sessions")

            return deleted

    def list_sessions(self) -> List[Dict[str, Any]]:
        """Data of every session that has not expired"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT data FROM sessions
                WHERE expires_at >= ?
            """, (_utcnow().isoformat(sep=" "),))

            return [json.loads(row['data']) for row in cursor.fetchall()]

# Create global database instance
db = Database()
