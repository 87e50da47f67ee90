"""
Text generation clients.

The insights generator talks to a TextGenerationClient. Two
implementations ship:

- OpenAITextClient: live chat completions through the openai SDK
- MockTextClient: deterministic offline JSON for development and demos

Environment (see utils.config.Config):
    NARRATIVE_MODE          mock | live
    OPENAI_API_KEY          required in live mode
    NARRATIVE_MODEL         default "gpt-4o-mini"
    NARRATIVE_TIMEOUT_S     default 30
    NARRATIVE_MAX_RETRIES   default 2
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import openai

from .errors import ApiError, ConfigurationError, RateLimitError
from utils.config import Config

logger = logging.getLogger(__name__)

PROVIDER_OPENAI = "openai"
PROVIDER_MOCK = "mock"
DEFAULT_MODEL = "gpt-4o-mini"


@dataclass(frozen=True)
class TextGenerationResponse:
    """Raw model output plus token usage."""
    content: str
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None


class TextGenerationClient(ABC):
    """Sends one prompt to a text-generation service."""

    provider: str = ""
    default_model: str = DEFAULT_MODEL

    @abstractmethod
    def send(self, prompt: str, model_id: Optional[str] = None) -> TextGenerationResponse:
        """
        Send a single-turn prompt.

        Args:
            prompt: Full user prompt.
            model_id: Model to use (client default when None).

        Returns:
            TextGenerationResponse

        Raises:
            ConfigurationError: credentials missing or rejected
            RateLimitError: provider throttled the request
            ApiError: any other provider or transport failure
        """
        pass


class OpenAITextClient(TextGenerationClient):
    """Chat completions via the official openai SDK."""

    provider = PROVIDER_OPENAI

    def __init__(
        self,
        api_key: Optional[str],
        default_model: str = DEFAULT_MODEL,
        timeout_s: float = 30.0,
        max_retries: int = 2,
    ):
        self.default_model = default_model
        self._api_key = api_key
        self._timeout_s = timeout_s
        self._max_retries = max_retries
        self._client = None

    def _get_client(self, model: str):
        if not self._api_key:
            raise ConfigurationError(
                "OPENAI_API_KEY not set for live narrative generation",
                provider=self.provider,
                model=model,
            )
        if self._client is None:
            self._client = openai.OpenAI(
                api_key=self._api_key,
                timeout=self._timeout_s,
                max_retries=self._max_retries,
            )
        return self._client

    def send(self, prompt: str, model_id: Optional[str] = None) -> TextGenerationResponse:
        model = model_id or self.default_model
        client = self._get_client(model)

        try:
            resp = client.chat.completions.create(
                model=model,
                messages=[{"role": "user", "content": prompt}],
            )
        except openai.RateLimitError as e:
            raise RateLimitError(
                str(e), provider=self.provider, model=model,
                retry_after=_retry_after(e),
            ) from e
        except (openai.AuthenticationError, openai.PermissionDeniedError, openai.NotFoundError) as e:
            raise ConfigurationError(str(e), provider=self.provider, model=model) from e
        except openai.APIError as e:
            raise ApiError(f"{self.provider} request failed: {e}") from e

        content = ""
        if resp.choices:
            content = resp.choices[0].message.content or ""

        usage = resp.usage
        return TextGenerationResponse(
            content=content,
            input_tokens=usage.prompt_tokens if usage else None,
            output_tokens=usage.completion_tokens if usage else None,
        )


def _retry_after(error: "openai.RateLimitError") -> Optional[float]:
    """Seconds from the Retry-After header, when the provider sent one."""
    response = getattr(error, "response", None)
    if response is None:
        return None
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


# =============================================================================
# Offline client
# =============================================================================

_ANCHOR_LOW = re.compile(r'"suggested_price_low_cents":\s*(\d+)')
_ANCHOR_HIGH = re.compile(r'"suggested_price_high_cents":\s*(\d+)')
_COMPARABLE_HEADING = re.compile(r"^### Comparable \d+", re.MULTILINE)


class MockTextClient(TextGenerationClient):
    """
    Deterministic narrative built from the prompt itself.

    Echoes the anchor price band embedded in the prompt and scales
    confidence with the number of comparables.
    """

    provider = PROVIDER_MOCK
    default_model = "mock-narrative"

    def send(self, prompt: str, model_id: Optional[str] = None) -> TextGenerationResponse:
        low = _first_int(_ANCHOR_LOW, prompt)
        high = _first_int(_ANCHOR_HIGH, prompt)
        count = len(_COMPARABLE_HEADING.findall(prompt))

        if count >= 5:
            confidence = "high"
        elif count >= 3:
            confidence = "medium"
        else:
            confidence = "low"

        payload = {
            "executive_summary": (
                f"Based on {count} comparable properties, the subject is positioned "
                "in line with the local market."
            ),
            "market_position": "Average, consistent with nearby comparable listings.",
            "pricing_rationale": (
                "The range is centred on the adjusted median of the comparables, "
                "after correcting for bedroom, bathroom, size, age and garage differences."
            ),
            "strengths": [
                "Comparable size to recent listings",
                "Established neighbourhood",
                "Configuration in demand locally",
            ],
            "considerations": [
                "Limited comparable data" if count < 3 else "Competing listings nearby",
                "Seasonal demand may affect time on market",
            ],
            "recommendation": "List within the suggested range and review after 30 days.",
            "time_to_sell_estimate": "30-60 days",
            "suggested_price_low_cents": low,
            "suggested_price_high_cents": high,
            "confidence_level": confidence,
        }
        content = json.dumps(payload)
        return TextGenerationResponse(
            content=content,
            input_tokens=len(prompt.split()),
            output_tokens=len(content.split()),
        )


def _first_int(pattern: re.Pattern, text: str) -> int:
    match = pattern.search(text)
    return int(match.group(1)) if match else 0


def build_text_client(config: Config) -> TextGenerationClient:
    """Pick the client for the configured narrative mode."""
    if config.narrative_mode == "live":
        logger.info("Narrative generation: live (%s)", config.narrative_model)
        return OpenAITextClient(
            api_key=config.openai_api_key,
            default_model=config.narrative_model,
            timeout_s=config.narrative_timeout_s,
            max_retries=config.narrative_max_retries,
        )
    logger.info("Narrative generation: mock")
    return MockTextClient()
