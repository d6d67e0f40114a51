"""Unit tests for the FeedbackEnricher orchestrator."""
import threading
import time
import pytest
from unittest.mock import Mock, patch
from conftest import InMemoryRepository, FailingProvider, StaticProvider
from src.pipelines.enrichment import (
    FeedbackEnricher,
    build_classification,
    build_classification_messages,
    rule_based_analysis,
)
from src.models.errors import ProviderError, QuotaExceededError, PersistenceError
from src.models.schemas import EnrichedFeedback


def _chat_response(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class SlowProvider:
    """Provider that never answers within the test timeout."""

    def invoke(self, messages, max_tokens):
        time.sleep(1.0)
        return _chat_response('{"theme": "Too Late"}')


class BlockingProvider:
    """Provider that blocks until released, recording the thread it ran on."""

    def __init__(self):
        self.release = threading.Event()
        self.thread = None

    def invoke(self, messages, max_tokens):
        self.thread = threading.current_thread()
        self.release.wait(5)
        return _chat_response('{"theme": "Too Late"}')


class TestFeedbackEnricherFallback:
    """Test the rule-based fallback path."""

    def test_always_failing_provider_yields_full_record(self, mock_config, sample_feedback_records):
        """Test enrich is total when the provider raises on every call."""
        repository = InMemoryRepository(sample_feedback_records)
        enricher = FeedbackEnricher(mock_config, provider=FailingProvider(), repository=repository)

        enriched = enricher.enrich(sample_feedback_records[0])

        assert isinstance(enriched, EnrichedFeedback)
        c = enriched.classification
        assert enriched.id == "fb_00001"
        assert c.theme == "Bug Reports"
        assert c.sentiment == "neutral"
        assert c.urgency == "medium"
        assert c.value == "medium"
        assert c.summary == "Deployment failed with an unclear error message in Workers."
        assert c.keywords == ["deployment", "failed", "unclear", "error", "message"]
        assert enriched.fallback_used is True
        assert enriched.quota_exceeded is False
        assert enriched.processed_at is not None

    @pytest.mark.parametrize("error", [
        ProviderError("auth failed"),
        RuntimeError("unexpected"),
        TimeoutError("socket timeout"),
    ])
    def test_any_provider_error_falls_back(self, mock_config, sample_feedback_records, error):
        """Test every kind of provider failure is recovered locally."""
        repository = InMemoryRepository(sample_feedback_records)
        enricher = FeedbackEnricher(mock_config, provider=FailingProvider(error), repository=repository)

        enriched = enricher.enrich(sample_feedback_records[1])

        assert enriched.fallback_used is True
        assert enriched.classification.theme == "Documentation Requests"
        assert enriched.classification.value == "medium"

    def test_quota_error_sets_flag(self, mock_config, sample_feedback_records):
        """Test an exhausted quota is surfaced as an informational flag."""
        repository = InMemoryRepository(sample_feedback_records)
        provider = FailingProvider(QuotaExceededError("insufficient_quota"))
        enricher = FeedbackEnricher(mock_config, provider=provider, repository=repository)

        enriched = enricher.enrich(sample_feedback_records[2])

        assert enriched.quota_exceeded is True
        assert enriched.fallback_used is True
        assert enriched.classification.sentiment == "positive"

    def test_unparseable_output_falls_back(self, mock_config, sample_feedback_records):
        """Test model output without a JSON object uses the rules."""
        repository = InMemoryRepository(sample_feedback_records)
        provider = StaticProvider(_chat_response("Sorry, I cannot help with that."))
        enricher = FeedbackEnricher(mock_config, provider=provider, repository=repository)

        enriched = enricher.enrich(sample_feedback_records[0])

        assert enriched.fallback_used is True
        assert enriched.classification.theme == "Bug Reports"

    def test_provider_timeout_falls_back(self, mock_config, sample_feedback_records):
        """Test an unresponsive provider is abandoned after the timeout."""
        mock_config.provider_timeout_seconds = 0.05
        repository = InMemoryRepository(sample_feedback_records)
        enricher = FeedbackEnricher(mock_config, provider=SlowProvider(), repository=repository)

        started = time.monotonic()
        enriched = enricher.enrich(sample_feedback_records[0])

        assert time.monotonic() - started < 0.9
        assert enriched.fallback_used is True
        assert enriched.classification.theme == "Bug Reports"

    def test_abandoned_call_does_not_block_exit(self, mock_config, sample_feedback_records):
        """Test a timed-out provider call is left on a daemon thread."""
        mock_config.provider_timeout_seconds = 0.05
        provider = BlockingProvider()
        repository = InMemoryRepository(sample_feedback_records)
        enricher = FeedbackEnricher(mock_config, provider=provider, repository=repository)

        try:
            enriched = enricher.enrich(sample_feedback_records[0])

            assert enriched.fallback_used is True
            assert provider.thread is not None
            assert provider.thread.daemon is True
            assert provider.thread.is_alive()
        finally:
            provider.release.set()

    def test_long_content_summary_truncated(self, mock_config, sample_feedback_records):
        """Test the fallback summary is the content cut at 200 characters."""
        record = sample_feedback_records[0].model_copy(update={"content": "x" * 500})
        repository = InMemoryRepository([record])
        enricher = FeedbackEnricher(mock_config, provider=FailingProvider(), repository=repository)

        enriched = enricher.enrich(record)

        assert enriched.classification.summary == "x" * 200


class TestFeedbackEnricherModelPath:
    """Test classification through the provider."""

    def test_model_classification_used(self, mock_config, sample_feedback_records):
        """Test a well-formed model answer is used as-is."""
        content = (
            'Here you go: {"theme": "Bug Reports", "sentiment": "negative", "urgency": "high", '
            '"value": "high", "summary": "Deploys fail with vague errors.", '
            '"keywords": "deployment, error message, workers"}'
        )
        provider = StaticProvider(_chat_response(content))
        repository = InMemoryRepository(sample_feedback_records)
        enricher = FeedbackEnricher(mock_config, provider=provider, repository=repository)

        enriched = enricher.enrich(sample_feedback_records[0])

        c = enriched.classification
        assert enriched.fallback_used is False
        assert c.theme == "Bug Reports"
        assert c.sentiment == "negative"
        assert c.urgency == "high"
        assert c.value == "high"
        assert c.summary == "Deploys fail with vague errors."
        assert c.keywords == ["deployment", "error message", "workers"]

    def test_prompt_contains_record_fields(self, mock_config, sample_feedback_records):
        """Test the request carries product area, source, content and max tokens."""
        provider = StaticProvider({"response": '{"theme": "Bug Reports"}'})
        repository = InMemoryRepository(sample_feedback_records)
        enricher = FeedbackEnricher(mock_config, provider=provider, repository=repository)

        enricher.enrich(sample_feedback_records[0])

        messages, max_tokens = provider.calls[0]
        assert max_tokens == 300
        assert messages[0]["role"] == "system"
        assert "JSON" in messages[0]["content"]
        assert "Product: Workers" in messages[1]["content"]
        assert "Source: support_ticket" in messages[1]["content"]
        assert "Deployment failed" in messages[1]["content"]

    def test_missing_fields_defaulted(self, mock_config, sample_feedback_records):
        """Test fields absent from the model answer get defaults."""
        provider = StaticProvider({"response": '{"theme": "", "sentiment": "negative"}'})
        repository = InMemoryRepository(sample_feedback_records)
        enricher = FeedbackEnricher(mock_config, provider=provider, repository=repository)

        enriched = enricher.enrich(sample_feedback_records[0])

        c = enriched.classification
        assert enriched.fallback_used is False
        assert c.theme == "unclassified"
        assert c.sentiment == "negative"
        assert c.urgency == "medium"
        assert c.value == "medium"
        assert c.summary == sample_feedback_records[0].content
        assert c.keywords == []


class TestFeedbackEnricherPersistence:
    """Test persistence side effects."""

    def test_upsert_and_archive(self, mock_config, sample_feedback_records):
        """Test the enriched row is upserted and the raw record archived."""
        repository = InMemoryRepository(sample_feedback_records)
        enricher = FeedbackEnricher(mock_config, provider=FailingProvider(), repository=repository)

        enriched = enricher.enrich(sample_feedback_records[0])

        assert repository.enriched["fb_00001"] is enriched
        assert repository.archived == ["fb_00001"]

    def test_archive_failure_is_not_fatal(self, mock_config, sample_feedback_records, caplog):
        """Test a failing archive write is logged and swallowed."""
        repository = InMemoryRepository(sample_feedback_records, fail_archive=True)
        enricher = FeedbackEnricher(mock_config, provider=FailingProvider(), repository=repository)

        enriched = enricher.enrich(sample_feedback_records[0])

        assert repository.enriched["fb_00001"] is enriched
        assert "archive failed for fb_00001" in caplog.text

    def test_upsert_failure_propagates(self, mock_config, sample_feedback_records):
        """Test a failed enriched write is fatal for the record."""
        repository = InMemoryRepository(sample_feedback_records, fail_upsert_for={"fb_00001"})
        enricher = FeedbackEnricher(mock_config, provider=FailingProvider(), repository=repository)

        with pytest.raises(RuntimeError):
            enricher.enrich(sample_feedback_records[0])
        assert repository.archived == []

    def test_persistence_error_not_swallowed(self, mock_config, sample_feedback_records):
        """Test PersistenceError from the adapter reaches the caller."""
        repository = InMemoryRepository(sample_feedback_records)
        repository.upsert_enriched = Mock(side_effect=PersistenceError("db down"))
        enricher = FeedbackEnricher(mock_config, provider=FailingProvider(), repository=repository)

        with pytest.raises(PersistenceError):
            enricher.enrich(sample_feedback_records[0])

    @patch('src.pipelines.enrichment.FeedbackRepository')
    @patch('src.pipelines.enrichment.ChatAgent')
    def test_default_collaborators(self, mock_chat_agent, mock_repository, mock_config):
        """Test default provider and repository are built from the config."""
        enricher = FeedbackEnricher(mock_config)

        mock_chat_agent.assert_called_once_with(mock_config)
        mock_repository.assert_called_once_with(mock_config)
        assert enricher.provider == mock_chat_agent.return_value
        assert enricher.repository == mock_repository.return_value


class TestBuildClassification:
    """Test field-level defaulting."""

    def test_empty_analysis(self):
        """Test an empty analysis produces every default."""
        c = build_classification({}, "Some content")
        assert c.theme == "unclassified"
        assert c.sentiment == "neutral"
        assert c.urgency == "medium"
        assert c.value == "medium"
        assert c.summary == "Some content"
        assert c.keywords == []

    def test_labels_normalized(self):
        """Test enumerated labels are trimmed and lower-cased."""
        c = build_classification({"sentiment": " Negative ", "urgency": "CRITICAL", "value": "Low"}, "x")
        assert c.sentiment == "negative"
        assert c.urgency == "critical"
        assert c.value == "low"

    def test_unknown_labels_defaulted(self):
        """Test labels outside the vocabulary fall back to defaults."""
        c = build_classification({"sentiment": "angry", "urgency": "whenever", "value": 3}, "x")
        assert c.sentiment == "neutral"
        assert c.urgency == "medium"
        assert c.value == "medium"

    def test_keywords_list_capped(self):
        """Test keyword lists are trimmed and capped at five."""
        c = build_classification({"keywords": [" a ", "", "b", "c", "d", "e", "f"]}, "x")
        assert c.keywords == ["a", "b", "c", "d", "e"]

    def test_model_summary_truncated(self):
        """Test an overlong model summary is cut at 200 characters."""
        c = build_classification({"summary": "y" * 300}, "x")
        assert c.summary == "y" * 200

    def test_rule_based_analysis(self):
        """Test the fallback analysis always assigns medium value."""
        analysis = rule_based_analysis("Critical outage, everything is down!")
        assert analysis["urgency"] == "critical"
        assert analysis["value"] == "medium"
        assert analysis["summary"] == "Critical outage, everything is down!"

    def test_messages_shape(self, sample_feedback_records):
        """Test the classification request has a system and a user message."""
        messages = build_classification_messages(sample_feedback_records[1])
        assert [m["role"] for m in messages] == ["system", "user"]
        assert "Documentation Requests" in messages[0]["content"]

    def test_long_theme_truncated(self):
        """Test a model theme longer than the column width is cut to 100 characters."""
        c = build_classification({"theme": "T" * 300}, "x")
        assert c.theme == "T" * 100

    def test_long_theme_stored(self, mock_config, sample_feedback_records):
        """Test an overlong model theme still produces a stored enrichment row."""
        provider = StaticProvider({"response": '{"theme": "%s", "sentiment": "negative"}' % ("Bug " * 60)})
        repository = InMemoryRepository(sample_feedback_records)
        enricher = FeedbackEnricher(mock_config, provider=provider, repository=repository)

        enriched = enricher.enrich(sample_feedback_records[0])

        assert enriched.fallback_used is False
        assert len(enriched.classification.theme) <= 100
        assert enriched.classification.theme.startswith("Bug Bug")
        assert "fb_00001" in repository.enriched
