"""
Narrative generation for CMA reports.
"""

from .errors import (
    NarrativeError,
    ConfigurationError,
    RateLimitError,
    ApiError,
    NarrativeParseError,
)
from .client import (
    TextGenerationClient,
    TextGenerationResponse,
    OpenAITextClient,
    MockTextClient,
    build_text_client,
)
from .audit import GenerationRequest, GenerationRequestLog, GenerationStatus
from .insights import (
    CmaInsightsGenerator,
    ConfidenceLevel,
    NarrativeInsights,
    NarrativeResult,
    SuggestedPrice,
    extract_json_block,
)

__all__ = [
    "NarrativeError",
    "ConfigurationError",
    "RateLimitError",
    "ApiError",
    "NarrativeParseError",
    "TextGenerationClient",
    "TextGenerationResponse",
    "OpenAITextClient",
    "MockTextClient",
    "build_text_client",
    "GenerationRequest",
    "GenerationRequestLog",
    "GenerationStatus",
    "CmaInsightsGenerator",
    "ConfidenceLevel",
    "NarrativeInsights",
    "NarrativeResult",
    "SuggestedPrice",
    "extract_json_block",
]
