"""Shared fixtures and test doubles."""
import threading
import pytest
from unittest.mock import Mock
from datetime import datetime, timezone
from src.config.settings import Settings
from src.models.schemas import RawFeedback


class InMemoryRepository:
    """Persistence adapter double keeping raw and enriched rows in dicts."""

    def __init__(self, records=None, fail_upsert_for=(), fail_archive=False):
        self.raw = {record.id: record for record in (records or [])}
        self.enriched = {}
        self.upserts = []
        self.archived = []
        self.fail_upsert_for = set(fail_upsert_for)
        self.fail_archive = fail_archive
        self._lock = threading.Lock()

    def find_unprocessed(self, limit):
        pending = [self.raw[i] for i in sorted(self.raw) if i not in self.enriched]
        return pending[:limit]

    def find_by_id(self, feedback_id):
        return self.raw.get(feedback_id)

    def upsert_enriched(self, enriched):
        if enriched.id in self.fail_upsert_for:
            raise RuntimeError(f"write failed for {enriched.id}")
        with self._lock:
            self.upserts.append(enriched)
            self.enriched[enriched.id] = enriched

    def archive_raw(self, record):
        if self.fail_archive:
            raise ConnectionError("archive unavailable")
        with self._lock:
            self.archived.append(record.id)
        return f"raw-feedback/{record.id}.json"


class FailingProvider:
    """Provider that raises on every call."""

    def __init__(self, error=None):
        self.error = error or ConnectionError("provider unavailable")
        self.calls = 0

    def invoke(self, messages, max_tokens):
        self.calls += 1
        raise self.error


class StaticProvider:
    """Provider that returns a fixed response and records the prompts it saw."""

    def __init__(self, response):
        self.response = response
        self.calls = []

    def invoke(self, messages, max_tokens):
        self.calls.append((messages, max_tokens))
        return self.response


@pytest.fixture
def mock_config():
    """Create a mock configuration."""
    config = Mock(spec=Settings)
    config.openai_api_key = "test-api-key"
    config.openai_llm_model = "gpt-4o-mini"
    config.openai_max_tokens = 300
    config.openai_max_retries = 2
    config.provider_timeout_seconds = 5.0
    config.sql_server_host = "test-server"
    config.sql_server_port = 1433
    config.sql_server_database = "test-db"
    config.sql_server_username = "test-user"
    config.sql_server_password = "test-pass"
    config.sql_server_schema = "feedback_insights"
    config.sql_timeout_seconds = 30
    config.postgres_host = "test-pg"
    config.postgres_port = 5432
    config.postgres_database = "test-archive"
    config.postgres_username = "test-user"
    config.postgres_password = "test-pass"
    config.postgres_sslmode = "disable"
    config.postgres_connect_timeout = 10
    config.batch_size = 10
    config.max_workers = 1
    config.seed_count = 20
    config.log_level = "INFO"
    return config


@pytest.fixture
def sample_feedback_records():
    """Create sample raw feedback records for testing."""
    return [
        RawFeedback(
            id="fb_00001",
            source="support_ticket",
            user_type="developer",
            country="US",
            product_area="Workers",
            content="Deployment failed with an unclear error message in Workers.",
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc)
        ),
        RawFeedback(
            id="fb_00002",
            source="github_issue",
            user_type="enterprise_customer",
            country="DE",
            product_area="D1",
            content="The documentation for D1 is confusing, especially around setup.",
            created_at=datetime(2024, 1, 2, tzinfo=timezone.utc)
        ),
        RawFeedback(
            id="fb_00003",
            source="twitter",
            user_type="indie_developer",
            country="JP",
            product_area="Pages",
            content="Great product, the new dashboard is amazing. Thanks!",
            created_at=datetime(2024, 1, 3, tzinfo=timezone.utc)
        ),
    ]
