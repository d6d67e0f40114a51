"""
Enrichment of a single raw feedback record.

The model path asks the classification provider for a JSON classification.
Any failure on that path (provider error, timeout, exhausted quota, output
that is not a JSON object) switches to the rule-based classifier, so
``enrich`` always produces a complete classification.
"""

from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
import logging
import threading

from src.config.settings import Settings
from src.agents.llm_agent import ChatAgent, ClassificationProvider
from src.agents.response_parser import extract_text, extract_structured
from src.classification import rules
from src.data_access.repository import FeedbackRepository
from src.data_access.archive_client import archive_key
from src.models.errors import ProviderTimeoutError, QuotaExceededError
from src.models.schemas import (
    RawFeedback,
    EnrichedFeedback,
    Classification,
    ArchiveResult,
    Sentiment,
    Urgency,
    Value,
    DEFAULT_THEME,
    SUMMARY_MAX_LENGTH,
    THEME_MAX_LENGTH,
    MAX_KEYWORDS,
)


logger = logging.getLogger(__name__)


CLASSIFICATION_SYSTEM_PROMPT = f"""You are a feedback analysis assistant. Analyze user feedback and extract:
1. Theme (short phrase, one of: {", ".join(f'"{label}"' for label in rules.THEME_LABELS)})
2. Sentiment (one word: positive, neutral, or negative)
3. Urgency (one word: low, medium, high, or critical)
4. Value (one word: low, medium, or high)
5. Summary (one sentence)
6. Keywords (comma-separated list of 3-5 key terms)

Respond ONLY in JSON format: {{"theme": "...", "sentiment": "...", "urgency": "...", "value": "...", "summary": "...", "keywords": "..."}}"""


def build_classification_messages(record: RawFeedback) -> List[dict]:
    """Chat messages asking the model to classify one feedback record."""
    return [
        {"role": "system", "content": CLASSIFICATION_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": (
                "Analyze this feedback:\n\n"
                f"Product: {record.product_area}\n"
                f"Source: {record.source}\n"
                f"Content: {record.content}"
            ),
        },
    ]


def _truncate_summary(text: str) -> str:
    return text[:SUMMARY_MAX_LENGTH]


def _choose(raw: Any, allowed, default) -> str:
    """Normalise a label and return it if it belongs to the enum, else the default."""
    if isinstance(raw, str):
        candidate = raw.strip().lower()
        if candidate in {member.value for member in allowed}:
            return candidate
    return default.value


def _normalize_keywords(raw: Any) -> List[str]:
    """Accept a list or a comma-separated string; trim, drop blanks, cap the length."""
    if isinstance(raw, str):
        items = raw.split(',')
    elif isinstance(raw, (list, tuple)):
        items = [str(item) for item in raw if item is not None]
    else:
        items = []
    keywords = [item.strip() for item in items if item.strip()]
    return keywords[:MAX_KEYWORDS]


def build_classification(analysis: Dict[str, Any], content: str) -> Classification:
    """
    Turn a (possibly partial) analysis dict into a complete Classification.

    Missing or unusable fields get the defaults: theme "unclassified",
    sentiment "neutral", urgency "medium", value "medium", the content as
    summary, no keywords. Theme and summary are cut to their column widths.
    """
    theme = analysis.get("theme")
    theme = str(theme).strip()[:THEME_MAX_LENGTH].rstrip() if theme is not None else ""

    summary = analysis.get("summary")
    summary = str(summary).strip() if summary is not None else ""

    return Classification(
        theme=theme or DEFAULT_THEME,
        sentiment=_choose(analysis.get("sentiment"), Sentiment, Sentiment.NEUTRAL),
        urgency=_choose(analysis.get("urgency"), Urgency, Urgency.MEDIUM),
        value=_choose(analysis.get("value"), Value, Value.MEDIUM),
        summary=_truncate_summary(summary or content),
        keywords=_normalize_keywords(analysis.get("keywords")),
    )


def rule_based_analysis(content: str) -> Dict[str, Any]:
    """Fallback analysis: rule-based labels, medium value, truncated content as summary."""
    result = rules.classify(content)
    return {
        "theme": result.theme,
        "sentiment": result.sentiment,
        "urgency": result.urgency,
        "value": Value.MEDIUM.value,
        "summary": _truncate_summary(content),
        "keywords": result.keywords,
    }


class FeedbackEnricher:
    """Classify one raw feedback record and persist the result."""

    def __init__(
        self,
        config: Settings,
        provider: Optional[ClassificationProvider] = None,
        repository: Optional[FeedbackRepository] = None
    ):
        """
        Args:
            config: Application settings
            provider: Classification provider. Defaults to the OpenAI ChatAgent.
            repository: Persistence adapter. Defaults to FeedbackRepository.
        """
        self.config = config
        self.provider = provider if provider is not None else ChatAgent(config)
        self.repository = repository if repository is not None else FeedbackRepository(config)
        self.max_tokens = config.openai_max_tokens
        self.provider_timeout = config.provider_timeout_seconds

    def enrich(self, record: RawFeedback) -> EnrichedFeedback:
        """
        Classify the record, upsert the enrichment row and archive the raw record.

        Model-path failures never escape; persistence failures of the enriched
        row do (as PersistenceError). Archival failures are logged only.
        """
        analysis, fallback_used, quota_exceeded = self._analyze(record)
        classification = build_classification(analysis, record.content)

        enriched = EnrichedFeedback(
            id=record.id,
            classification=classification,
            processed_at=datetime.now(timezone.utc),
            fallback_used=fallback_used,
            quota_exceeded=quota_exceeded
        )
        self.repository.upsert_enriched(enriched)

        archive = self._archive(record)
        if not archive.ok:
            logger.error(f"Raw feedback archive failed for {record.id} ({archive.key}): {archive.error}")

        return enriched

    def _analyze(self, record: RawFeedback) -> Tuple[Dict[str, Any], bool, bool]:
        """Returns (analysis, fallback_used, quota_exceeded)."""
        try:
            raw_response = self._invoke_provider(build_classification_messages(record))
            analysis = extract_structured(extract_text(raw_response))
            return analysis, False, False
        except QuotaExceededError as e:
            logger.warning(f"Provider quota exceeded for {record.id}, using rule-based fallback: {e}")
            return rule_based_analysis(record.content), True, True
        except Exception as e:
            logger.warning(f"AI analysis failed for {record.id}, using rule-based fallback: {e}")
            return rule_based_analysis(record.content), True, False

    def _invoke_provider(self, messages: List[dict]) -> Any:
        """
        Call the provider, giving up after the configured timeout.

        The call runs on a daemon thread. An abandoned call is left to finish
        on its own (the OpenAI client has the same timeout) and never keeps
        the process alive at exit.
        """
        future = Future()

        def run():
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(self.provider.invoke(messages, self.max_tokens))
            except BaseException as e:
                future.set_exception(e)

        threading.Thread(target=run, name="classification-provider", daemon=True).start()
        try:
            return future.result(timeout=self.provider_timeout)
        except FutureTimeoutError as e:
            raise ProviderTimeoutError(
                f"Provider did not respond within {self.provider_timeout}s"
            ) from e

    def _archive(self, record: RawFeedback) -> ArchiveResult:
        key = archive_key(record.id)
        try:
            key = self.repository.archive_raw(record) or key
        except Exception as e:
            return ArchiveResult(feedback_id=record.id, key=key, ok=False, error=str(e))
        return ArchiveResult(feedback_id=record.id, key=key, ok=True)
