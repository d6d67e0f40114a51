from openai import OpenAI, APIError, APITimeoutError, RateLimitError
from typing import Any, List, Optional, Protocol
from src.config.settings import Settings
from src.models.errors import ProviderError, ProviderTimeoutError, QuotaExceededError
import time
import logging

logger = logging.getLogger(__name__)

QUOTA_ERROR_CODES = {"insufficient_quota"}


class ClassificationProvider(Protocol):
    """Anything that can run a chat prompt and return a response of any shape."""

    def invoke(self, messages: List[dict], max_tokens: int) -> Any:
        ...


def _is_quota_error(error: RateLimitError) -> bool:
    if getattr(error, "code", None) in QUOTA_ERROR_CODES:
        return True
    return "quota" in str(error).lower()


class ChatAgent:
    """OpenAI chat completion client used as the classification provider."""

    def __init__(self, config: Settings, client: Optional[OpenAI] = None):
        self.config = config
        # Retries are handled below so that quota errors are not retried
        self.client = client or OpenAI(
            api_key=config.openai_api_key,
            timeout=config.provider_timeout_seconds,
            max_retries=0,
        )
        self.model = config.openai_llm_model
        self.max_retries = config.openai_max_retries

    def invoke(self, messages: List[dict], max_tokens: int) -> dict:
        """
        Send messages to the chat model and return the raw completion as a dict.

        Plain rate limits are retried with exponential backoff. Exhausted quota,
        timeouts and every other API error are raised as provider errors.

        Args:
            messages: List of message dicts (e.g., [{"role": "user", "content": "Hello"}])
            max_tokens: Upper bound on generated tokens

        Returns:
            The completion in chat-completion shape (``choices[0].message.content``).
        """
        base_delay = 1.0  # Start with 1 second delay

        for attempt in range(self.max_retries + 1):
            try:
                response = self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    max_tokens=max_tokens
                )
                return response.model_dump()
            except RateLimitError as e:
                if _is_quota_error(e):
                    raise QuotaExceededError(str(e)) from e
                if attempt == self.max_retries:
                    raise ProviderError(f"Rate limit persisted after {attempt + 1} attempts: {e}") from e

                delay = base_delay * (2 ** attempt)
                logger.warning(f"Rate limit hit on chat completion. Retrying in {delay}s... (attempt {attempt + 1}/{self.max_retries + 1})")
                time.sleep(delay)
            except APITimeoutError as e:
                raise ProviderTimeoutError(str(e)) from e
            except APIError as e:
                raise ProviderError(str(e)) from e

