"""
Narrative generation errors.

ConfigurationError and RateLimitError describe systemic problems and
propagate to callers. Every other NarrativeError is local to a single
report and is turned into a failure result.
"""

from typing import Optional


class NarrativeError(Exception):
    """Base class for text-generation failures."""


class ConfigurationError(NarrativeError):
    """Missing or rejected credentials, unknown model, disabled provider."""

    def __init__(self, message: str, provider: Optional[str] = None, model: Optional[str] = None):
        super().__init__(message)
        self.provider = provider
        self.model = model


class RateLimitError(NarrativeError):
    """Provider refused the request for quota or rate reasons."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.retry_after = retry_after


class ApiError(NarrativeError):
    """Transport or provider-side failure for one request."""


class NarrativeParseError(ApiError):
    """Response text did not contain a usable JSON object."""
