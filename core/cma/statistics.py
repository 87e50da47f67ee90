"""
Market statistics over scored comparables.

All price aggregates are integer cents rounded half away from zero. An
aggregate whose input set is empty is None, never 0.
"""

import math
from typing import List, Optional, Sequence

from .models import (
    MarketStatistics,
    PriceRange,
    ScoredComparable,
    SubjectProperty,
    SubjectValueEstimate,
)
from utils.formatting import round_half_up


def mean(values: Sequence[float]) -> Optional[int]:
    """Arithmetic mean rounded to whole cents; None when empty."""
    if not values:
        return None
    return round_half_up(sum(values) / len(values))


def median(values: Sequence[float]) -> Optional[int]:
    """Middle value (average of the two middles for even counts); None when empty."""
    if not values:
        return None
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 1:
        return round_half_up(ordered[mid])
    return round_half_up((ordered[mid - 1] + ordered[mid]) / 2)


def sample_std_dev(values: Sequence[float]) -> Optional[int]:
    """Sample standard deviation (N-1); None with fewer than 2 values."""
    if len(values) < 2:
        return None
    avg = sum(values) / len(values)
    variance = sum((v - avg) ** 2 for v in values) / (len(values) - 1)
    return round_half_up(math.sqrt(variance))


class StatisticsCalculator:
    """
    Computes market statistics from a list of scored comparables.

    Raw and adjusted prices are extracted independently: a comparable
    missing one still contributes the other.
    """

    def calculate(
        self,
        comparables: List[ScoredComparable],
        subject: Optional[SubjectProperty] = None,
        currency: str = "USD",
    ) -> MarketStatistics:
        """
        Calculate statistics.

        Args:
            comparables: Scored comparables (may be empty)
            subject: Subject property, used for the value estimate
            currency: Currency code echoed on the result

        Returns:
            MarketStatistics with None for every unavailable aggregate
        """
        comparables = comparables or []
        subject_size = subject.constructed_area if subject else None

        if not comparables:
            return MarketStatistics(comparable_count=0, currency=currency)

        prices = self._positive(c.price_cents for c in comparables)
        adjusted = self._positive(c.adjusted_price_cents for c in comparables)
        sizes = self._positive(c.constructed_area for c in comparables)
        scores = [c.similarity_score for c in comparables if c.similarity_score is not None]

        price_range = None
        if prices:
            price_range = PriceRange(low_cents=min(prices), high_cents=max(prices))

        return MarketStatistics(
            comparable_count=len(comparables),
            currency=currency,
            average_price_cents=mean(prices),
            median_price_cents=median(prices),
            adjusted_average_cents=mean(adjusted),
            adjusted_median_cents=median(adjusted),
            price_per_area_cents=self._price_per_area(comparables),
            price_range=price_range,
            price_std_dev_cents=sample_std_dev(prices),
            average_size=round_half_up(sum(sizes) / len(sizes), 1) if sizes else None,
            median_size=self._median_size(sizes),
            min_size=min(sizes) if sizes else None,
            max_size=max(sizes) if sizes else None,
            average_similarity=round_half_up(sum(scores) / len(scores), 1) if scores else None,
            subject_size=subject_size or None,
            subject_value_estimate=self._subject_value_estimate(comparables, subject),
        )

    @staticmethod
    def _positive(values) -> list:
        return [v for v in values if v is not None and v > 0]

    @staticmethod
    def _median_size(sizes: List[float]) -> Optional[float]:
        if not sizes:
            return None
        ordered = sorted(sizes)
        mid = len(ordered) // 2
        if len(ordered) % 2 == 1:
            return round_half_up(ordered[mid], 1)
        return round_half_up((ordered[mid - 1] + ordered[mid]) / 2, 1)

    @staticmethod
    def _price_per_area(comparables: List[ScoredComparable]) -> Optional[int]:
        """Mean of each comparable's own rounded price/area ratio."""
        ratios = [
            round_half_up(c.price_cents / c.constructed_area)
            for c in comparables
            if (c.price_cents or 0) > 0 and (c.constructed_area or 0) > 0
        ]
        return mean(ratios)

    @staticmethod
    def _subject_value_estimate(
        comparables: List[ScoredComparable],
        subject: Optional[SubjectProperty],
    ) -> Optional[SubjectValueEstimate]:
        if subject is None or not (subject.constructed_area or 0) > 0:
            return None

        ratios = [
            c.adjusted_price_cents / c.constructed_area
            for c in comparables
            if (c.adjusted_price_cents or 0) > 0 and (c.constructed_area or 0) > 0
        ]
        if not ratios:
            return None

        per_area = sum(ratios) / len(ratios)
        return SubjectValueEstimate(
            price_per_area_cents=round_half_up(per_area),
            subject_area=subject.constructed_area,
            estimated_value_cents=round_half_up(per_area * subject.constructed_area),
        )
