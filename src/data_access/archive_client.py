# src/data_access/archive_client.py
"""
PostgreSQL document archive for raw feedback backups.
"""

import psycopg2
from psycopg2.extras import Json
import logging
import time

from src.config.settings import Settings
from src.models.errors import PersistenceError
from src.models.schemas import RawFeedback


logger = logging.getLogger(__name__)


ARCHIVE_PREFIX = "raw-feedback"
# After a failed connect, writes fail fast for this long
RECONNECT_COOLDOWN_SECONDS = 300


def archive_key(feedback_id: str) -> str:
    """Object key under which a raw feedback record is archived."""
    return f"{ARCHIVE_PREFIX}/{feedback_id}.json"


class ArchiveClient:
    """PostgreSQL JSONB store holding one document per raw feedback record."""

    def __init__(self, config: Settings):
        self.config = config
        self.conn = None
        self.connect_error = None
        self.retry_after = 0.0

    def connect(self) -> None:
        """
        Establish database connection.

        A failed attempt is remembered: calls within the cooldown fail fast
        instead of waiting for the connect timeout again.
        """
        if self.connect_error is not None and time.monotonic() < self.retry_after:
            raise PersistenceError(f"Archive unavailable: {self.connect_error}")
        try:
            self.conn = psycopg2.connect(
                host=self.config.postgres_host,
                port=self.config.postgres_port,
                database=self.config.postgres_database,
                user=self.config.postgres_username,
                password=self.config.postgres_password,
                sslmode=self.config.postgres_sslmode,
                connect_timeout=self.config.postgres_connect_timeout
            )
            self.connect_error = None
        except psycopg2.OperationalError as e:
            self.connect_error = e
            self.retry_after = time.monotonic() + RECONNECT_COOLDOWN_SECONDS
            logger.error(f"Could not connect to the raw feedback archive, retrying in {RECONNECT_COOLDOWN_SECONDS}s: {e}")
            raise PersistenceError(f"Archive unavailable: {e}") from e

    def close(self) -> None:
        """Close database connection."""
        self.connect_error = None
        if self.conn:
            self.conn.close()
            self.conn = None

    def initialize_schema(self) -> None:
        """Create the archive table if it doesn't exist."""
        if not self.conn:
            self.connect()

        schema_sql = """
        CREATE TABLE IF NOT EXISTS raw_feedback_archive (
            object_key VARCHAR(300) PRIMARY KEY,
            feedback_id VARCHAR(255) NOT NULL,
            content_type VARCHAR(100) NOT NULL DEFAULT 'application/json',
            body JSONB NOT NULL,
            archived_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );

        CREATE INDEX IF NOT EXISTS raw_feedback_archive_feedback_idx
        ON raw_feedback_archive(feedback_id);
        """

        with self.conn.cursor() as cursor:
            cursor.execute(schema_sql)
            self.conn.commit()

    def put_raw_feedback(self, record: RawFeedback) -> str:
        """
        Store the raw record as a JSON document, replacing any earlier copy.

        Args:
            record: Raw feedback to archive

        Returns:
            The object key the document was written under
        """
        if not self.conn:
            self.connect()

        key = archive_key(record.id)
        query = """
            INSERT INTO raw_feedback_archive (object_key, feedback_id, content_type, body, archived_at)
            VALUES (%s, %s, 'application/json', %s, NOW())
            ON CONFLICT (object_key) DO UPDATE
            SET body = EXCLUDED.body,
                archived_at = EXCLUDED.archived_at
        """

        try:
            with self.conn.cursor() as cursor:
                cursor.execute(query, (key, record.id, Json(record.model_dump(mode="json"))))
                self.conn.commit()
        except psycopg2.Error:
            if self.conn.closed:
                # Lost connection; reconnect on the next call
                self.conn = None
            else:
                self.conn.rollback()
            raise

        return key

