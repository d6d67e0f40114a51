from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from typing import Optional, List
from enum import Enum


SUMMARY_MAX_LENGTH = 200
THEME_MAX_LENGTH = 100
MAX_KEYWORDS = 5

DEFAULT_THEME = "unclassified"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Value(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RawFeedback(BaseModel):
    """Raw user feedback record, as written by ingestion or the seeder."""
    model_config = ConfigDict(frozen=True)

    id: str
    source: str
    user_type: str
    country: str
    product_area: str
    content: str
    created_at: datetime


class Classification(BaseModel):
    """Structured classification of one feedback item. Every field is always set."""
    model_config = ConfigDict(use_enum_values=True)

    theme: str = Field(DEFAULT_THEME, max_length=THEME_MAX_LENGTH)
    sentiment: Sentiment = Sentiment.NEUTRAL
    urgency: Urgency = Urgency.MEDIUM
    value: Value = Value.MEDIUM
    summary: str = Field("", max_length=SUMMARY_MAX_LENGTH)
    keywords: List[str] = Field(default_factory=list, max_length=MAX_KEYWORDS)


class EnrichedFeedback(BaseModel):
    """Classification of a RawFeedback row, keyed by the raw id."""
    id: str
    classification: Classification
    processed_at: datetime
    # Informational only, not persisted
    fallback_used: bool = False
    quota_exceeded: bool = False


class ArchiveResult(BaseModel):
    """Outcome of the best-effort raw feedback archival write."""
    feedback_id: str
    key: str
    ok: bool
    error: Optional[str] = None


class BatchItemResult(BaseModel):
    """Per-record outcome inside a batch run."""
    id: str
    success: bool
    error: Optional[str] = None
    enriched: Optional[EnrichedFeedback] = None


class BatchResult(BaseModel):
    """Aggregated outcome of a batch run."""
    processed_count: int
    results: List[BatchItemResult]

    @property
    def succeeded(self) -> int:
        return sum(1 for item in self.results if item.success)

    @property
    def failed(self) -> int:
        return sum(1 for item in self.results if not item.success)


class AdviceItem(BaseModel):
    title: str
    text: str


class AdviceResult(BaseModel):
    """Recommendations for the product team, from the model or from rules."""
    advice: List[AdviceItem]
    ai_response: Optional[str] = None
    error: Optional[str] = None
    fallback: bool = False
