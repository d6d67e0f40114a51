"""
Exception taxonomy for the feedback enrichment pipeline.

Provider and parse errors are recovered inside enrichment by falling back to
rule-based classification. NotFoundError and PersistenceError reach the caller.
"""


class FeedbackPipelineError(Exception):
    """Base class for pipeline errors."""


class ProviderError(FeedbackPipelineError):
    """The classification provider failed (network, auth, server error)."""


class ProviderTimeoutError(ProviderError):
    """The classification provider did not answer within the timeout."""


class QuotaExceededError(ProviderError):
    """The classification provider refused the call because the quota is used up."""


class ParseError(FeedbackPipelineError):
    """Model output could not be interpreted as a classification object."""


class NotFoundError(FeedbackPipelineError):
    """No raw feedback exists for the requested id."""

    def __init__(self, feedback_id: str):
        super().__init__(f"Feedback not found: {feedback_id}")
        self.feedback_id = feedback_id


class PersistenceError(FeedbackPipelineError):
    """A required database read or write failed."""
