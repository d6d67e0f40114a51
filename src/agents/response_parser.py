"""
Interpret generative model responses.

Providers answer in different shapes (plain strings, ``{"response": ...}``,
``{"text": ...}``, chat completions). ``extract_text`` reduces any of them to
plain text; ``extract_structured`` then pulls a JSON object out of that text.
"""

import json
import re
import logging
from collections.abc import Mapping
from typing import Any, Callable, Dict, List, Optional

from src.models.errors import ParseError

logger = logging.getLogger(__name__)

MIN_ADVICE_POINT_LENGTH = 20
MAX_ADVICE_POINTS = 5

_CODE_FENCE = re.compile(r'```(?:json)?\s*|\s*```')
_ADVICE_SPLIT = re.compile(r'\d+\.|\n-|\n\*|##|###')
_ADVICE_LEADING_MARKUP = re.compile(r'^[\d.\-*#\s]+')


def _from_string(raw: Any) -> Optional[str]:
    return raw if isinstance(raw, str) else None


def _from_field(field: str) -> Callable[[Any], Optional[str]]:
    def matcher(raw: Any) -> Optional[str]:
        if isinstance(raw, Mapping):
            value = raw.get(field)
            if isinstance(value, str) and value:
                return value
        return None
    matcher.__name__ = f"_from_{field}_field"
    return matcher


def _from_chat_completion(raw: Any) -> Optional[str]:
    if not isinstance(raw, Mapping):
        return None
    choices = raw.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    message = first.get("message") if isinstance(first, Mapping) else None
    if not isinstance(message, Mapping):
        return None
    content = message.get("content")
    return content if isinstance(content, str) else None


# Tried in order; the first matcher returning text wins
SHAPE_MATCHERS: List[Callable[[Any], Optional[str]]] = [
    _from_string,
    _from_field("response"),
    _from_field("text"),
    _from_chat_completion,
]


def extract_text(raw_response: Any) -> str:
    """
    Reduce a provider response of any shape to plain text. Never raises.

    Unknown shapes are serialised to JSON, or to ``str()`` when they are not
    JSON-serialisable.
    """
    for matcher in SHAPE_MATCHERS:
        text = matcher(raw_response)
        if text is not None:
            return text

    try:
        return json.dumps(raw_response)
    except (TypeError, ValueError):
        return str(raw_response)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def extract_structured(text: str) -> Dict[str, Any]:
    """
    Extract the JSON object embedded in free text.

    Takes everything from the first ``{`` to the last ``}``. If that slice does
    not parse (for instance because prose after the object contains a brace),
    the first complete object starting at the first ``{`` is decoded instead.
    Keys with null, blank or empty values are dropped.

    Raises:
        ParseError: no object could be found or parsed.
    """
    cleaned = _CODE_FENCE.sub('', text or '')
    start = cleaned.find('{')
    end = cleaned.rfind('}')
    if start == -1 or end < start:
        raise ParseError("No JSON object found in model response")

    try:
        parsed = json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError:
        try:
            parsed, _ = json.JSONDecoder().raw_decode(cleaned, start)
        except json.JSONDecodeError as e:
            raise ParseError(f"Model response is not valid JSON: {e}") from e

    if not isinstance(parsed, dict):
        raise ParseError("Model response JSON is not an object")

    return {key: value for key, value in parsed.items() if not _is_blank(value)}


def extract_advice_points(text: str) -> List[str]:
    """Split free-form advice into at most five recommendation strings."""
    points = []
    for fragment in _ADVICE_SPLIT.split(text or ''):
        if len(fragment.strip()) <= MIN_ADVICE_POINT_LENGTH:
            continue
        point = _ADVICE_LEADING_MARKUP.sub('', fragment.strip()).strip()
        if point:
            points.append(point)
        if len(points) == MAX_ADVICE_POINTS:
            break
    return points
