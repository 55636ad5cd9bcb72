"""SQLite document store for prospects."""

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional


class Database:
    """SQLite interface holding one JSON document per prospect."""

    def __init__(self, db_path: Path):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file, or ":memory:"
        """
        self.db_path = db_path
        if str(db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn: Optional[sqlite3.Connection] = None

    def connect(self):
        """Open database connection."""
        self.conn = sqlite3.connect(str(self.db_path))
        self.conn.row_factory = sqlite3.Row
        return self

    def close(self):
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        """Context manager entry."""
        return self.connect()

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def init_schema(self):
        """Create database schema if not exists."""
        cursor = self._cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS prospects (
                phone_number TEXT PRIMARY KEY,
                conversation_state TEXT NOT NULL,
                last_interaction TEXT,
                created_at TEXT NOT NULL,
                document TEXT NOT NULL,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_prospects_state
            ON prospects(conversation_state)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_prospects_last_interaction
            ON prospects(last_interaction)
        """)

        self.conn.commit()

    def _cursor(self) -> sqlite3.Cursor:
        if self.conn is None:
            raise sqlite3.ProgrammingError("Database is not connected")
        return self.conn.cursor()

    # Prospect documents

    def get_prospect(self, phone_number: str) -> Optional[Dict[str, Any]]:
        """Get the stored document for a phone number."""
        cursor = self._cursor()
        cursor.execute(
            "SELECT document FROM prospects WHERE phone_number = ?", (phone_number,)
        )
        row = cursor.fetchone()
        if not row:
            return None
        return json.loads(row["document"])

    def upsert_prospect(self, document: Dict[str, Any]):
        """Insert or replace a prospect document."""
        cursor = self._cursor()
        cursor.execute(
            """
            INSERT INTO prospects (
                phone_number, conversation_state, last_interaction,
                created_at, document, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(phone_number) DO UPDATE SET
                conversation_state = excluded.conversation_state,
                last_interaction = excluded.last_interaction,
                document = excluded.document,
                updated_at = excluded.updated_at
            """,
            (
                document["phone_number"],
                document["conversation_state"],
                document.get("last_interaction"),
                document["created_at"],
                json.dumps(document, ensure_ascii=False),
                datetime.now().isoformat(),
            ),
        )
        self.conn.commit()

    def find_inactive(
        self, cutoff: datetime, excluded_states: Iterable[str]
    ) -> List[Dict[str, Any]]:
        """Get documents last touched before the cutoff.

        Args:
            cutoff: Timezone-aware UTC cutoff
            excluded_states: State values to leave out

        Returns:
            List of prospect documents, oldest interaction first
        """
        excluded = list(excluded_states)
        placeholders = ",".join("?" for _ in excluded) or "''"
        cursor = self._cursor()
        cursor.execute(
            f"""
            SELECT document FROM prospects
            WHERE COALESCE(last_interaction, created_at) < ?
              AND conversation_state NOT IN ({placeholders})
            ORDER BY COALESCE(last_interaction, created_at)
            """,
            (cutoff.isoformat(timespec="microseconds"), *excluded),
        )
        return [json.loads(row["document"]) for row in cursor.fetchall()]
