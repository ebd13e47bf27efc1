"""
errors.py - Error taxonomy shared by the pipeline and the HTTP layer.

Each error carries the HTTP status the API layer renders it with, so handlers
never need to know which component raised it.
"""


class MoodWiseError(Exception):
    """Base class for all errors raised by MoodWise components."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(MoodWiseError):
    """Malformed caller input (missing text, mood out of range, ...)."""

    status_code = 400


class AuthenticationError(MoodWiseError):
    status_code = 401


class NotFoundError(MoodWiseError):
    status_code = 404


class ConflictError(MoodWiseError):
    status_code = 409


class ProviderError(MoodWiseError):
    """A text-generation provider call failed (transport, timeout, empty or blocked output)."""

    def __init__(self, message: str, provider: str = ""):
        super().__init__(message)
        self.provider = provider


class ClassificationError(MoodWiseError):
    """Sentiment/tone output was missing or could not be parsed into the expected shape."""


class RecommendationError(MoodWiseError):
    """Every configured recommendation provider failed."""
