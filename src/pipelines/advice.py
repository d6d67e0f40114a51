# src/pipelines/advice.py
"""
Advisory summaries: turn a feedback breakdown into recommendations for the
product team. Uses the classification provider when it is available and
falls back to rule-based recommendations otherwise.
"""

from typing import Any, Dict, List, Optional
import json
import logging

from src.agents.llm_agent import ClassificationProvider
from src.agents.response_parser import extract_text, extract_advice_points
from src.models.errors import QuotaExceededError
from src.models.schemas import AdviceItem, AdviceResult


logger = logging.getLogger(__name__)

ADVICE_MAX_TOKENS = 500

ADVICE_SYSTEM_PROMPT = (
    "You are a product management assistant. Analyze feedback data and provide actionable "
    "recommendations. Focus on themes, urgency, value, and sentiment. Provide 3-5 specific, "
    "actionable recommendations in a clear format."
)

GENERIC_ADVICE = [
    AdviceItem(
        title="Data Analysis",
        text="Analyze the feedback patterns and identify common themes across different platforms and products."
    ),
    AdviceItem(
        title="Priority Focus",
        text="Focus on high-urgency and high-value feedback items to maximize impact."
    ),
    AdviceItem(
        title="Sentiment Monitoring",
        text="Monitor sentiment trends and address negative feedback proactively."
    ),
]


def _count(value: Any) -> float:
    """Numeric count, or 0 for anything that is not a number or numeric string."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0


def _entries(raw: Any) -> List[Dict[str, Any]]:
    # chartData comes from the client; ignore anything that is not a list of objects
    if not isinstance(raw, list):
        return []
    return [entry for entry in raw if isinstance(entry, dict)]


def _first(raw: Any) -> Optional[Dict[str, Any]]:
    entries = _entries(raw)
    return entries[0] if entries else None


def _top(raw: Any) -> Optional[Dict[str, Any]]:
    """Entry with the highest count; the first one wins ties."""
    entries = _entries(raw)
    if not entries:
        return None
    best = entries[0]
    for entry in entries[1:]:
        if _count(entry.get("count")) > _count(best.get("count")):
            best = entry
    return best


def _title_case_platform(key: str) -> str:
    # support_ticket -> Support ticket -> Support Ticket
    return " ".join(word[:1].upper() + word[1:] for word in key.replace("_", " ", 1).split(" "))


class AdviceGenerator:
    """Generate recommendations from aggregated feedback counts."""

    def __init__(self, provider: Optional[ClassificationProvider]):
        self.provider = provider

    def generate(self, filters: Dict[str, Any], chart_data: Dict[str, Any]) -> AdviceResult:
        """
        Ask the model for recommendations; never raises.

        Args:
            filters: Active dashboard filters (product, platform, country, timeRange)
            chart_data: Counts per dimension (byTheme, byPlatform, byProduct,
                bySentiment, byUrgency, byValue) and totalCount
        """
        filters = filters or {}
        chart_data = chart_data or {}

        try:
            if self.provider is None:
                raise RuntimeError("AI provider is not configured")

            messages = [
                {"role": "system", "content": ADVICE_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": "Based on this feedback analysis, provide strategic recommendations "
                               f"for the product team:\n\n{self._build_context(filters, chart_data)}"
                },
            ]
            ai_text = extract_text(self.provider.invoke(messages, ADVICE_MAX_TOKENS))
        except QuotaExceededError as e:
            logger.warning(f"AI quota exceeded, using rule-based recommendations: {e}")
            limit_notice = AdviceItem(
                title="AI Service Limit Reached",
                text="The AI service limit has been reached. Please upgrade your plan or try again later. "
                     "Using rule-based recommendations instead."
            )
            return AdviceResult(
                advice=[limit_notice] + self._rule_based_advice(chart_data)[:3],
                error="AI quota exceeded",
                fallback=True
            )
        except Exception as e:
            logger.error(f"AI advice generation failed: {e}")
            return AdviceResult(advice=list(GENERIC_ADVICE), error=str(e), fallback=True)

        points = extract_advice_points(ai_text)
        if points:
            advice = [AdviceItem(title=f"Recommendation {i + 1}", text=point) for i, point in enumerate(points)]
        else:
            advice = self._rule_based_advice(chart_data)

        return AdviceResult(advice=advice, ai_response=ai_text)

    def _build_context(self, filters: Dict[str, Any], chart_data: Dict[str, Any]) -> str:
        top_theme = _first(chart_data.get("byTheme"))
        top_platform = _top(chart_data.get("byPlatform"))
        top_product = _top(chart_data.get("byProduct"))

        def describe(entry):
            if not entry:
                return "N/A (0 occurrences)"
            return f"{entry.get('key', 'N/A')} ({entry.get('count', 0)} occurrences)"

        return "\n".join([
            "Feedback Analysis Summary:",
            f"- Total feedback count: {chart_data.get('totalCount') or 0}",
            f"- Top theme: {describe(top_theme)}",
            f"- Top platform: {describe(top_platform)}",
            f"- Top product: {describe(top_product)}",
            f"- Sentiment distribution: {json.dumps(chart_data.get('bySentiment') or [])}",
            f"- Urgency distribution: {json.dumps(chart_data.get('byUrgency') or [])}",
            f"- Value distribution: {json.dumps(chart_data.get('byValue') or [])}",
            "",
            "Current filters:",
            f"- Product: {filters.get('product') or 'All'}",
            f"- Platform: {filters.get('platform') or 'All'}",
            f"- Country: {filters.get('country') or 'All'}",
            f"- Time Range: {filters.get('timeRange') or '30'} days",
        ])

    def _rule_based_advice(self, chart_data: Dict[str, Any]) -> List[AdviceItem]:
        top_theme = _first(chart_data.get("byTheme"))
        top_platform = _top(chart_data.get("byPlatform"))
        top_product = _top(chart_data.get("byProduct"))
        total = _count(chart_data.get("totalCount"))

        if top_theme and total > 0:
            share = _count(top_theme.get("count")) / total * 100
            priority = (f'Address "{top_theme.get("key")}" theme immediately - it represents '
                        f'{share:.1f}% of all feedback. Consider creating a dedicated task force.')
        else:
            priority = "Review top themes and prioritize action items."

        if top_platform:
            platform = (f"{_title_case_platform(str(top_platform.get('key', '')))} is the primary feedback source. "
                        "Enhance monitoring and response time for this channel.")
        else:
            platform = "Monitor all feedback channels consistently."

        if top_product:
            product = (f"{top_product.get('key')} shows the highest feedback volume. Review recent changes "
                       "and consider user education or feature improvements.")
        else:
            product = "Review product feedback distribution and identify improvement areas."

        return [
            AdviceItem(title="Priority Action", text=priority),
            AdviceItem(title="Platform Focus", text=platform),
            AdviceItem(title="Product Recommendation", text=product),
            AdviceItem(
                title="Strategic Insight",
                text="Based on sentiment analysis, focus on areas with negative sentiment and "
                     "replicate success patterns from positive feedback."
            ),
        ]
