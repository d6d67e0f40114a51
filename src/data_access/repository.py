# src/data_access/repository.py
"""
Persistence adapter used by the enrichment pipeline.

Combines the SQL Server feedback store (raw + enriched tables) with the
PostgreSQL raw feedback archive behind the operations the pipeline needs.
"""

import threading
from typing import List, Optional

from src.config.settings import Settings
from src.data_access.sql_client import SQLClient
from src.data_access.archive_client import ArchiveClient
from src.models.schemas import RawFeedback, EnrichedFeedback


class FeedbackRepository:
    """Feedback store and raw archive behind one interface."""

    def __init__(
        self,
        config: Settings,
        sql_client: Optional[SQLClient] = None,
        archive_client: Optional[ArchiveClient] = None
    ):
        self.config = config
        self.sql_client = sql_client or SQLClient(config)
        self.archive_client = archive_client or ArchiveClient(config)
        # The DB-API connections are not safe to share between worker threads
        self._sql_lock = threading.Lock()
        self._archive_lock = threading.Lock()

    def connect(self) -> None:
        """Open the feedback store connection. The archive connects lazily."""
        self.sql_client.connect()

    def close(self) -> None:
        self.sql_client.close()
        self.archive_client.close()

    def initialize_schema(self) -> None:
        self.sql_client.initialize_schema()
        self.archive_client.initialize_schema()

    def find_unprocessed(self, limit: int) -> List[RawFeedback]:
        with self._sql_lock:
            return self.sql_client.get_unprocessed_feedback(limit)

    def find_by_id(self, feedback_id: str) -> Optional[RawFeedback]:
        with self._sql_lock:
            return self.sql_client.get_feedback_by_id(feedback_id)

    def upsert_enriched(self, enriched: EnrichedFeedback) -> None:
        with self._sql_lock:
            self.sql_client.upsert_enriched_feedback(enriched)

    def archive_raw(self, record: RawFeedback) -> str:
        """Archive the raw record. Raises on failure; callers decide whether that matters."""
        with self._archive_lock:
            return self.archive_client.put_raw_feedback(record)
