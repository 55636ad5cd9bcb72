"""Prospect store with an in-memory fallback for when SQLite is unavailable."""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from leadbot.storage.database import Database
from leadbot.storage.models import ConversationState, Prospect, utcnow

logger = logging.getLogger(__name__)

INACTIVE_EXCLUDED_STATES = (ConversationState.CLOSING, ConversationState.CLOSED)


class ProspectStore:
    """Reads and writes prospects, never raising to callers.

    Writes go to the database when it is reachable. When a write fails the
    prospect is kept in memory instead, and reads consult memory before the
    database. Memory-only records are lost when the process exits.
    """

    def __init__(self, database: Optional[Database] = None):
        """Initialize store.

        Args:
            database: Primary SQLite store, or None to run from memory only
        """
        self.database = database
        self._memory: Dict[str, Dict[str, Any]] = {}

    def open(self):
        """Connect the primary store, falling back to memory if it fails."""
        self._memory.clear()
        if self.database is None:
            logger.warning("No database configured, prospects kept in memory only")
            return
        try:
            if self.database.conn is None:
                self.database.connect()
            self.database.init_schema()
            logger.info(f"Prospect store ready at {self.database.db_path}")
        except Exception as e:
            logger.warning(f"Database unavailable, using memory fallback: {e}")

    def close(self):
        """Close the primary store and drop the memory fallback."""
        if self._memory:
            logger.warning(
                f"Discarding {len(self._memory)} prospects held only in memory"
            )
        self._memory.clear()
        if self.database is not None:
            try:
                self.database.close()
            except Exception as e:
                logger.error(f"Error closing database: {e}")

    @property
    def memory_only_count(self) -> int:
        return len(self._memory)

    def get(self, phone_number: str) -> Prospect:
        """Get a prospect, or a fresh INITIAL one if the number is unknown."""
        document = self._load_document(phone_number)
        if document is not None:
            try:
                return Prospect.from_document(document)
            except Exception as e:
                logger.error(f"Corrupt prospect document for {phone_number}: {e}")
        return Prospect(phone_number=phone_number)

    def update(self, phone_number: str, patch: Dict[str, Any]) -> Prospect:
        """Merge a patch into a prospect and persist it.

        Args:
            phone_number: Normalized phone number
            patch: Attribute name to new value

        Returns:
            The merged prospect
        """
        prospect = self.get(phone_number)

        for key, value in patch.items():
            if key == "phone_number":
                if value != phone_number:
                    logger.warning(
                        f"Ignoring attempt to change phone number of {phone_number}"
                    )
                continue
            if not hasattr(prospect, key):
                logger.warning(f"Ignoring unknown prospect field '{key}'")
                continue
            setattr(prospect, key, value)

        # lastInteraction strictly increases even if the clock does not
        now = utcnow()
        previous = prospect.last_interaction
        if previous is not None and now <= previous:
            now = previous + timedelta(microseconds=1)
        prospect.last_interaction = now

        self._save(prospect)
        return prospect

    def find_inactive(self, hours: int) -> List[Prospect]:
        """Get prospects idle for more than `hours` that are not closing or closed."""
        cutoff = utcnow() - timedelta(hours=hours)
        excluded = [state.value for state in INACTIVE_EXCLUDED_STATES]

        documents: Dict[str, Dict[str, Any]] = {}
        if self.database is not None and self.database.conn is not None:
            try:
                for doc in self.database.find_inactive(cutoff, excluded):
                    documents[doc["phone_number"]] = doc
            except Exception as e:
                logger.warning(f"Inactive prospect query failed: {e}")

        prospects = []
        for phone_number, doc in self._memory.items():
            documents[phone_number] = doc
        for doc in documents.values():
            try:
                prospect = Prospect.from_document(doc)
            except Exception as e:
                logger.error(f"Skipping corrupt document: {e}")
                continue
            last = prospect.last_interaction or prospect.created_at
            if last < cutoff and prospect.conversation_state not in INACTIVE_EXCLUDED_STATES:
                prospects.append(prospect)

        prospects.sort(key=lambda p: p.last_interaction or p.created_at)
        return prospects

    def _load_document(self, phone_number: str) -> Optional[Dict[str, Any]]:
        if phone_number in self._memory:
            return self._memory[phone_number]
        if self.database is None:
            return None
        try:
            return self.database.get_prospect(phone_number)
        except Exception as e:
            logger.warning(f"Database read failed for {phone_number}: {e}")
            return None

    def _save(self, prospect: Prospect):
        document = prospect.to_document()
        if self.database is not None:
            try:
                self.database.upsert_prospect(document)
                self._memory.pop(prospect.phone_number, None)
                return
            except Exception as e:
                logger.warning(
                    f"Database write failed for {prospect.phone_number}, "
                    f"keeping in memory: {e}"
                )
        self._memory[prospect.phone_number] = document
