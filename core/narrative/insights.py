"""
CMA narrative insights.

Turns comparables and market statistics into a written analysis via an
external text-generation client:

- Executive summary
- Market position analysis
- Pricing rationale
- Strengths and considerations
- Recommended listing price band
- Estimated time to sell

Every attempt is recorded as a GenerationRequest of type "market_report".
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from core.cma.models import MarketStatistics, ScoredComparable, SubjectProperty
from utils.formatting import format_price, format_signed_price, round_half_up

from .audit import GenerationRequestLog
from .client import TextGenerationClient
from .errors import ConfigurationError, NarrativeError, NarrativeParseError, RateLimitError

if TYPE_CHECKING:
    from core.reports.models import Report

logger = logging.getLogger(__name__)


REQUEST_TYPE = "market_report"

# Anchor band around the (adjusted) median
ANCHOR_LOW_FACTOR = Decimal("0.95")
ANCHOR_HIGH_FACTOR = Decimal("1.05")

UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred"


# =============================================================================
# Result Types
# =============================================================================


class ConfidenceLevel(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def from_string(cls, value: Any) -> Optional[ConfidenceLevel]:
        if not isinstance(value, str):
            return None
        normalised = value.strip().lower()
        for member in cls:
            if member.value == normalised:
                return member
        return None


@dataclass(frozen=True)
class NarrativeInsights:
    executive_summary: Optional[str] = None
    market_position: Optional[str] = None
    pricing_rationale: Optional[str] = None
    strengths: tuple[str, ...] = ()
    considerations: tuple[str, ...] = ()
    recommendation: Optional[str] = None
    time_to_sell_estimate: Optional[str] = None
    confidence_level: Optional[ConfidenceLevel] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "executive_summary": self.executive_summary,
            "market_position": self.market_position,
            "pricing_rationale": self.pricing_rationale,
            "strengths": list(self.strengths),
            "considerations": list(self.considerations),
            "recommendation": self.recommendation,
            "time_to_sell_estimate": self.time_to_sell_estimate,
            "confidence_level": self.confidence_level.value if self.confidence_level else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NarrativeInsights:
        return cls(
            executive_summary=data.get("executive_summary"),
            market_position=data.get("market_position"),
            pricing_rationale=data.get("pricing_rationale"),
            strengths=tuple(_string_list(data.get("strengths"))),
            considerations=tuple(_string_list(data.get("considerations"))),
            recommendation=data.get("recommendation"),
            time_to_sell_estimate=data.get("time_to_sell_estimate"),
            confidence_level=ConfidenceLevel.from_string(data.get("confidence_level")),
        )


@dataclass(frozen=True)
class SuggestedPrice:
    low_cents: int
    high_cents: int
    currency: str = "USD"

    def to_dict(self) -> dict[str, Any]:
        return {
            "low_cents": self.low_cents,
            "high_cents": self.high_cents,
            "currency": self.currency,
        }


@dataclass
class NarrativeResult:
    success: bool
    insights: Optional[NarrativeInsights] = None
    suggested_price: Optional[SuggestedPrice] = None
    request_id: Optional[str] = None
    error: Optional[str] = None


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


# =============================================================================
# JSON Extraction
# =============================================================================


def extract_json_block(text: str) -> Optional[str]:
    """
    Return the first balanced {...} block in text.

    Braces inside JSON string literals (including escaped quotes) are
    ignored, so prose before or after the object does not matter.

    Returns:
        The block, or None if no opening brace is ever closed.
    """
    if not text:
        return None

    start = text.find("{")
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False

    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]

    return None


def _as_cents(value: Any) -> Optional[int]:
    """Integer cents from a model value; bools and fractional floats rejected."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


# =============================================================================
# Generator
# =============================================================================


class CmaInsightsGenerator:
    """
    Generates narrative insights for a CMA report.

    Configuration and rate-limit failures propagate to the caller after the
    audit entry is marked failed. Every other failure becomes a
    NarrativeResult with success=False.
    """

    def __init__(
        self,
        client: TextGenerationClient,
        request_log: Optional[GenerationRequestLog] = None,
        model_id: Optional[str] = None,
    ):
        """
        Initialize generator.

        Args:
            client: Text generation client
            request_log: Audit log (in-memory log created when omitted)
            model_id: Model override (client default when None)
        """
        self._client = client
        self._log = request_log or GenerationRequestLog()
        self._model_id = model_id

    @property
    def request_log(self) -> GenerationRequestLog:
        return self._log

    def generate(
        self,
        report: Report,
        subject: Optional[SubjectProperty],
        comparables: list[ScoredComparable],
        statistics: Optional[MarketStatistics],
    ) -> NarrativeResult:
        """
        Generate insights for one report.

        Args:
            report: Report being generated (id, website, currency)
            subject: Subject property
            comparables: Scored comparables in ranked order
            statistics: Market statistics for the comparables

        Returns:
            NarrativeResult

        Raises:
            ConfigurationError: credentials missing or rejected
            RateLimitError: provider throttled the request
        """
        request = self._log.create(
            website_id=report.website_id,
            request_type=REQUEST_TYPE,
            input_data=self._input_data(report, subject, comparables, statistics),
            user_id=report.user_id,
        )
        request.mark_processing()
        self._log.save(request)

        currency = report.suggested_price_currency or "USD"

        try:
            low_anchor, high_anchor = self.anchor_band(statistics)
            prompt = self.build_prompt(
                subject, comparables, statistics, currency, low_anchor, high_anchor,
            )
            response = self._client.send(prompt, self._model_id)
            insights, suggested = self._parse_response(
                response.content, low_anchor, high_anchor, currency,
            )

            request.mark_completed(
                output={"insights": insights.to_dict(), "suggested_price": suggested.to_dict()},
                input_tokens=response.input_tokens,
                output_tokens=response.output_tokens,
            )
            self._log.save(request)

            return NarrativeResult(
                success=True,
                insights=insights,
                suggested_price=suggested,
                request_id=request.id,
            )

        except (RateLimitError, ConfigurationError) as e:
            request.mark_failed(str(e))
            self._log.save(request)
            raise

        except NarrativeError as e:
            logger.warning("CMA insights failed for report %s: %s", report.id, e)
            request.mark_failed(str(e))
            self._log.save(request)
            return NarrativeResult(success=False, error=str(e), request_id=request.id)

        except Exception as e:
            logger.exception("Unexpected error generating CMA insights for report %s", report.id)
            request.mark_failed(f"Unexpected error: {e}")
            self._log.save(request)
            return NarrativeResult(
                success=False, error=UNEXPECTED_ERROR_MESSAGE, request_id=request.id,
            )

    # =========================================================================
    # Anchors
    # =========================================================================

    @staticmethod
    def anchor_band(statistics: Optional[MarketStatistics]) -> tuple[int, int]:
        """
        Deterministic starting price band.

        Adjusted median, else raw median, else 0; then -5% / +5%.
        """
        baseline = None
        if statistics is not None:
            baseline = statistics.adjusted_median_cents
            if baseline is None:
                baseline = statistics.median_price_cents
        if baseline is None:
            return 0, 0

        base = Decimal(baseline)
        return (
            round_half_up(base * ANCHOR_LOW_FACTOR),
            round_half_up(base * ANCHOR_HIGH_FACTOR),
        )

    # =========================================================================
    # Prompt
    # =========================================================================

    def build_prompt(
        self,
        subject: Optional[SubjectProperty],
        comparables: list[ScoredComparable],
        statistics: Optional[MarketStatistics],
        currency: str,
        low_anchor: int,
        high_anchor: int,
    ) -> str:
        return f"""You are an expert real estate appraiser and market analyst. Generate a professional CMA (Comparative Market Analysis) insight report.

## Subject Property
{self._format_subject(subject)}

## Comparable Properties ({len(comparables)} found)
{self._format_comparables(comparables, currency)}

## Market Statistics
{self._format_statistics(statistics, currency)}

## Task
Analyze the data and provide a comprehensive CMA report. Return your response as valid JSON in this exact format:

{{
  "executive_summary": "2-3 sentence overview of the property's market position and recommended pricing",
  "market_position": "How this property compares to the local market (above average, average, below average) with specific reasons",
  "pricing_rationale": "Detailed explanation of how the suggested price range was determined based on the comparable sales",
  "strengths": ["List 3-5 key strengths or selling points"],
  "considerations": ["List 2-3 factors that might affect marketability or require attention"],
  "recommendation": "Clear, actionable pricing recommendation with specific strategy",
  "time_to_sell_estimate": "Estimated days on market at the suggested price",
  "suggested_price_low_cents": {low_anchor},
  "suggested_price_high_cents": {high_anchor},
  "confidence_level": "high/medium/low based on comparable quality and quantity"
}}

Important:
- Return ONLY valid JSON, no additional text or markdown
- Base your analysis on the actual comparable data provided
- Be specific about how adjustments affect the price recommendation
- Consider both the raw prices and the adjusted prices when making recommendations
- The suggested prices should be in cents (e.g., $350,000 = 35000000)
"""

    @staticmethod
    def _format_subject(subject: Optional[SubjectProperty]) -> str:
        if subject is None:
            return "No subject property specified"

        details = [
            f"Address: {subject.full_address}",
            f"Property Type: {subject.property_type or 'N/A'}",
        ]
        if (subject.bedrooms or 0) > 0:
            details.append(f"Bedrooms: {subject.bedrooms}")
        if (subject.bathrooms or 0) > 0:
            details.append(f"Bathrooms: {subject.bathrooms}")
        if (subject.constructed_area or 0) > 0:
            details.append(f"Size: {subject.constructed_area} sqm")
        if (subject.year_built or 0) > 0:
            details.append(f"Year Built: {subject.year_built}")
        if (subject.garages or 0) > 0:
            details.append(f"Garages: {subject.garages}")
        return "\n".join(details)

    @staticmethod
    def _format_comparables(comparables: list[ScoredComparable], currency: str) -> str:
        if not comparables:
            return "No comparable properties found"

        blocks = []
        for i, comp in enumerate(comparables, start=1):
            c = comp.candidate
            if comp.adjustments:
                adjustments = ", ".join(
                    f"{adj.category.replace('_', ' ').capitalize()}: "
                    f"{format_signed_price(adj.amount_cents, currency)}"
                    for adj in comp.adjustments
                )
            else:
                adjustments = "None"
            distance = f"{comp.distance_km} km" if comp.distance_km is not None else "N/A"

            blocks.append("\n".join([
                f"### Comparable {i}",
                f"- Address: {c.full_address}",
                f"- Price: {format_price(c.price_cents, currency)}",
                f"- Bedrooms: {c.bedrooms}, Bathrooms: {c.bathrooms}",
                f"- Size: {c.constructed_area} sqm",
                f"- Year Built: {c.year_built or 'N/A'}",
                f"- Similarity Score: {comp.similarity_score}%",
                f"- Distance: {distance}",
                f"- Adjustments: {adjustments}",
                f"- Adjusted Price: {format_price(comp.adjusted_price_cents, currency)}",
            ]))
        return "\n\n".join(blocks)

    @staticmethod
    def _format_statistics(statistics: Optional[MarketStatistics], currency: str) -> str:
        if statistics is None:
            return "No statistics available"

        lines = [
            f"Average Price: {format_price(statistics.average_price_cents, currency)}",
            f"Median Price: {format_price(statistics.median_price_cents, currency)}",
            f"Adjusted Average: {format_price(statistics.adjusted_average_cents, currency)}",
            f"Adjusted Median: {format_price(statistics.adjusted_median_cents, currency)}",
            f"Price per sqm: {format_price(statistics.price_per_area_cents, currency)}/sqm",
            f"Comparable Count: {statistics.comparable_count}",
        ]
        if statistics.average_similarity is not None:
            lines.append(f"Average Similarity Score: {statistics.average_similarity}%")
        if statistics.price_range is not None:
            lines.append(
                f"Price Range: {format_price(statistics.price_range.low_cents, currency)}"
                f" - {format_price(statistics.price_range.high_cents, currency)}"
            )
        return "\n".join(lines)

    # =========================================================================
    # Parsing
    # =========================================================================

    @staticmethod
    def _parse_response(
        content: str,
        low_anchor: int,
        high_anchor: int,
        currency: str,
    ) -> tuple[NarrativeInsights, SuggestedPrice]:
        block = extract_json_block(content or "")
        if block is None:
            raise NarrativeParseError("No valid JSON in response")

        try:
            parsed = json.loads(block)
        except json.JSONDecodeError as e:
            raise NarrativeParseError(f"Failed to parse AI response: {e}") from e

        if not isinstance(parsed, dict):
            raise NarrativeParseError("AI response JSON is not an object")

        low = _as_cents(parsed.get("suggested_price_low_cents"))
        high = _as_cents(parsed.get("suggested_price_high_cents"))

        suggested = SuggestedPrice(
            low_cents=low if low is not None else low_anchor,
            high_cents=high if high is not None else high_anchor,
            currency=currency,
        )
        return NarrativeInsights.from_dict(parsed), suggested

    @staticmethod
    def _input_data(
        report: Report,
        subject: Optional[SubjectProperty],
        comparables: list[ScoredComparable],
        statistics: Optional[MarketStatistics],
    ) -> dict[str, Any]:
        data = {
            "report_id": report.id,
            "report_type": report.report_type,
            "subject_property_id": subject.id if subject else None,
            "comparable_count": len(comparables),
        }
        if statistics is not None:
            data["statistics_summary"] = {
                "average_price": statistics.average_price_cents,
                "median_price": statistics.median_price_cents,
                "adjusted_average": statistics.adjusted_average_cents,
                "adjusted_median": statistics.adjusted_median_cents,
            }
        return {k: v for k, v in data.items() if v is not None}
