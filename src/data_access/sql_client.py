import json
import pymssql
from typing import List, Optional
from src.config.settings import Settings
from src.models.errors import PersistenceError
from src.models.schemas import RawFeedback, EnrichedFeedback


class SQLClient:
    """SQL Server client for raw feedback and enrichment results."""

    def __init__(self, config: Settings):
        self.config = config
        self.schema = config.sql_server_schema
        self.conn = None

    def connect(self) -> None:
        """Establish database connection."""
        try:
            self.conn = pymssql.connect(
                server=self.config.sql_server_host,
                port=self.config.sql_server_port,
                user=self.config.sql_server_username,
                password=self.config.sql_server_password,
                database=self.config.sql_server_database,
                login_timeout=self.config.sql_timeout_seconds,
                timeout=self.config.sql_timeout_seconds
            )
        except pymssql.Error as e:
            raise PersistenceError(f"Could not connect to SQL Server: {e}") from e

    def close(self) -> None:
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    def initialize_schema(self) -> None:
        """Create the feedback tables if they don't exist."""
        if not self.conn:
            self.connect()

        schema_sql = f"""
            IF NOT EXISTS (SELECT 1 FROM sys.schemas WHERE name = '{self.schema}')
                EXEC('CREATE SCHEMA {self.schema}');

            IF OBJECT_ID('{self.schema}.raw_feedback', 'U') IS NULL
            CREATE TABLE {self.schema}.raw_feedback (
                id VARCHAR(255) PRIMARY KEY,
                source VARCHAR(100) NOT NULL,
                user_type VARCHAR(100) NOT NULL,
                country VARCHAR(10) NOT NULL,
                product_area VARCHAR(100) NOT NULL,
                content NVARCHAR(MAX) NOT NULL,
                created_at DATETIME2 NOT NULL
            );

            IF OBJECT_ID('{self.schema}.enriched_feedback', 'U') IS NULL
            CREATE TABLE {self.schema}.enriched_feedback (
                id VARCHAR(255) PRIMARY KEY
                    REFERENCES {self.schema}.raw_feedback(id),
                theme NVARCHAR(100) NOT NULL,
                sentiment VARCHAR(20) NOT NULL,
                urgency VARCHAR(20) NOT NULL,
                value VARCHAR(20) NOT NULL,
                summary NVARCHAR(400) NOT NULL,
                keywords NVARCHAR(MAX) NOT NULL,
                processed_at DATETIME2 NOT NULL
            );
        """

        self._execute(schema_sql)

    def get_unprocessed_feedback(self, limit: int) -> List[RawFeedback]:
        """
        Retrieve raw feedback that has no enrichment row yet, ordered by id.
        """
        if not self.conn:
            self.connect()

        query = f"""
            SELECT TOP (%s) r.id, r.source, r.user_type, r.country, r.product_area, r.content, r.created_at
            FROM {self.schema}.raw_feedback AS r
            LEFT JOIN {self.schema}.enriched_feedback AS e ON r.id = e.id
            WHERE e.id IS NULL
            ORDER BY r.id
        """

        try:
            with self.conn.cursor(as_dict=True) as cursor:
                cursor.execute(query, (limit,))
                rows = cursor.fetchall()
        except pymssql.Error as e:
            self._drop_if_disconnected(e)
            raise PersistenceError(f"Failed to fetch unprocessed feedback: {e}") from e

        return [self._row_to_feedback(row) for row in rows]

    def get_feedback_by_id(self, feedback_id: str) -> Optional[RawFeedback]:
        """
        Retrieve a single raw feedback record, or None if it does not exist.
        """
        if not self.conn:
            self.connect()

        query = f"""
            SELECT id, source, user_type, country, product_area, content, created_at
            FROM {self.schema}.raw_feedback
            WHERE id = %s
        """

        try:
            with self.conn.cursor(as_dict=True) as cursor:
                cursor.execute(query, (feedback_id,))
                row = cursor.fetchone()
        except pymssql.Error as e:
            self._drop_if_disconnected(e)
            raise PersistenceError(f"Failed to fetch feedback {feedback_id}: {e}") from e

        return self._row_to_feedback(row) if row else None

    def upsert_raw_feedback(self, records: List[RawFeedback]) -> None:
        """
        Insert raw feedback, replacing rows that already exist.
        """
        if not self.conn:
            self.connect()

        query = f"""
            MERGE INTO {self.schema}.raw_feedback AS target
            USING (VALUES (%s, %s, %s, %s, %s, %s, %s)) AS source
                (id, source, user_type, country, product_area, content, created_at)
            ON target.id = source.id
            WHEN MATCHED THEN
                UPDATE SET
                    source = source.source,
                    user_type = source.user_type,
                    country = source.country,
                    product_area = source.product_area,
                    content = source.content,
                    created_at = source.created_at
            WHEN NOT MATCHED THEN
                INSERT (id, source, user_type, country, product_area, content, created_at)
                VALUES (source.id, source.source, source.user_type, source.country,
                        source.product_area, source.content, source.created_at);
        """

        try:
            with self.conn.cursor() as cursor:
                for record in records:
                    cursor.execute(
                        query,
                        (record.id, record.source, record.user_type, record.country,
                         record.product_area, record.content, record.created_at)
                    )
                self.conn.commit()
        except pymssql.Error as e:
            self._rollback(e)
            raise PersistenceError(f"Failed to store raw feedback: {e}") from e

    def upsert_enriched_feedback(self, enriched: EnrichedFeedback) -> None:
        """
        Insert or fully replace the enrichment row for one feedback id.

        A single MERGE keeps the replace atomic, so readers never see a
        partially written classification.
        """
        if not self.conn:
            self.connect()

        query = f"""
            MERGE INTO {self.schema}.enriched_feedback AS target
            USING (VALUES (%s, %s, %s, %s, %s, %s, %s, %s)) AS source
                (id, theme, sentiment, urgency, value, summary, keywords, processed_at)
            ON target.id = source.id
            WHEN MATCHED THEN
                UPDATE SET
                    theme = source.theme,
                    sentiment = source.sentiment,
                    urgency = source.urgency,
                    value = source.value,
                    summary = source.summary,
                    keywords = source.keywords,
                    processed_at = source.processed_at
            WHEN NOT MATCHED THEN
                INSERT (id, theme, sentiment, urgency, value, summary, keywords, processed_at)
                VALUES (source.id, source.theme, source.sentiment, source.urgency,
                        source.value, source.summary, source.keywords, source.processed_at);
        """

        c = enriched.classification
        try:
            with self.conn.cursor() as cursor:
                cursor.execute(
                    query,
                    (enriched.id, c.theme, c.sentiment, c.urgency, c.value, c.summary,
                     json.dumps(c.keywords), enriched.processed_at)
                )
                self.conn.commit()
        except pymssql.Error as e:
            self._rollback(e)
            raise PersistenceError(f"Failed to store enriched feedback {enriched.id}: {e}") from e

    def _execute(self, sql: str) -> None:
        try:
            with self.conn.cursor() as cursor:
                cursor.execute(sql)
                self.conn.commit()
        except pymssql.Error as e:
            self._drop_if_disconnected(e)
            raise PersistenceError(f"SQL execution failed: {e}") from e

    def _rollback(self, error: Exception) -> None:
        """Roll back a failed write; a connection that cannot roll back is dropped."""
        try:
            self.conn.rollback()
        except pymssql.Error:
            self._drop_connection()
            return
        self._drop_if_disconnected(error)

    def _drop_if_disconnected(self, error: Exception) -> None:
        # The next call reconnects instead of reusing a dead handle
        if isinstance(error, (pymssql.OperationalError, pymssql.InterfaceError)):
            self._drop_connection()

    def _drop_connection(self) -> None:
        conn, self.conn = self.conn, None
        if conn is None:
            return
        try:
            conn.close()
        except pymssql.Error:
            # Closing a broken connection can fail; it is discarded either way
            pass

    @staticmethod
    def _row_to_feedback(row: dict) -> RawFeedback:
        return RawFeedback(
            id=row['id'],
            source=row['source'],
            user_type=row['user_type'],
            country=row['country'],
            product_area=row['product_area'],
            content=row['content'],
            created_at=row['created_at']
        )
