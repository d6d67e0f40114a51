from pydantic import BaseModel, Field, ConfigDict
from typing import Any, Dict, Optional

from src.models.schemas import EnrichedFeedback, BatchItemResult, AdviceResult


# ==========================================
# Requests
# ==========================================

class ProcessRequest(BaseModel):
    """Body of POST /process. Without feedbackId a batch of unprocessed records is enriched."""
    model_config = ConfigDict(populate_by_name=True)

    feedback_id: Optional[str] = Field(None, alias="feedbackId")
    batch_size: int = Field(10, alias="batchSize", ge=1)


class SeedRequest(BaseModel):
    count: Optional[int] = Field(None, ge=1)
    seed: Optional[int] = None


class AdviceRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    filters: Dict[str, Any] = Field(default_factory=dict)
    chart_data: Dict[str, Any] = Field(default_factory=dict, alias="chartData")


# ==========================================
# Response payloads
# ==========================================

def enriched_payload(enriched: EnrichedFeedback) -> Dict[str, Any]:
    """Flat JSON view of an enriched record: id, classification fields, flags."""
    c = enriched.classification
    return {
        "id": enriched.id,
        "theme": c.theme,
        "sentiment": c.sentiment,
        "urgency": c.urgency,
        "value": c.value,
        "summary": c.summary,
        "keywords": list(c.keywords),
        "processedAt": enriched.processed_at.isoformat(),
        "fallback": enriched.fallback_used,
        "quotaExceeded": enriched.quota_exceeded,
    }


def batch_item_payload(item: BatchItemResult) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"id": item.id, "success": item.success}
    if item.success and item.enriched is not None:
        payload["enriched"] = enriched_payload(item.enriched)
    if item.error is not None:
        payload["error"] = item.error
    return payload


def advice_payload(result: AdviceResult) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "ok": True,
        "advice": [item.model_dump() for item in result.advice],
    }
    if result.ai_response is not None:
        payload["aiResponse"] = result.ai_response
    if result.error is not None:
        payload["error"] = result.error
    if result.fallback:
        payload["fallback"] = True
    return payload


def error_payload(message: str) -> Dict[str, Any]:
    return {"ok": False, "error": message}

