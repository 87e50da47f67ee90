"""
Comparables Finder for CMA generation.

Pipeline order:
1. FILTER - Apply candidate eligibility filters
2. SCORE - Similarity score (100 base, penalties for differences)
3. ADJUST - Price adjustments toward subject parity
4. RANK - Threshold, sort by similarity, cap
"""

import logging
from concurrent.futures import Executor
from typing import Iterable, List, Optional

from .filters import CandidateFilter, haversine_km
from .models import (
    ComparableCandidate,
    ComparablesResult,
    PriceAdjustment,
    ScoredComparable,
    SearchOptions,
    SubjectProperty,
)
from utils.formatting import round_half_up

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Constants
# =============================================================================

# Similarity penalty caps (points off 100)
PENALTY_PROPERTY_TYPE = 20
PENALTY_CAP_BEDROOMS = 15
PENALTY_CAP_BATHROOMS = 10
PENALTY_CAP_SIZE = 20
PENALTY_CAP_LOCATION = 20
PENALTY_CAP_YEAR = 10

# Penalty rates
PENALTY_PER_BEDROOM = 3
PENALTY_PER_BATHROOM = 5
PENALTY_PER_KM = 4
SIZE_PERCENT_PER_POINT = 5
YEARS_PER_POINT = 5

# Adjustment factors (cents)
ADJUSTMENT_PER_BEDROOM = 1_500_000
ADJUSTMENT_PER_BATHROOM = 1_000_000
ADJUSTMENT_PER_AREA_UNIT = 15_000
ADJUSTMENT_PER_YEAR = 100_000
ADJUSTMENT_PER_GARAGE = 800_000

# Differences at or below these are ignored
MIN_BATHROOM_DIFF = 0.5
MIN_AREA_DIFF = 10
MIN_YEAR_DIFF = 5


class ComparablesFinder:
    """
    Finds and ranks comparable properties for a subject.

    Scoring is a pure function of (subject, candidate), so an executor may
    be supplied to score candidates in parallel. Without one, scoring runs
    sequentially.
    """

    def __init__(self, executor: Optional[Executor] = None):
        """
        Initialize finder.

        Args:
            executor: Optional concurrent.futures executor for scoring
        """
        self._executor = executor

    def find(
        self,
        subject: SubjectProperty,
        candidate_pool: Iterable[ComparableCandidate],
        options: Optional[SearchOptions] = None,
    ) -> ComparablesResult:
        """
        Run the full comparables pipeline.

        Args:
            subject: The property being analysed
            candidate_pool: Inventory candidates for the subject's website
            options: Search options (defaults apply when omitted)

        Returns:
            ComparablesResult; an empty list is a valid outcome
        """
        options = options or SearchOptions()

        # Step 1: Filter
        candidate_filter = CandidateFilter(radius_km=options.radius_km)
        eligible = candidate_filter.filter_candidates(list(candidate_pool), subject)

        # Step 2-3: Score and adjust
        scored = self._score_all(subject, eligible)

        # Step 4: Threshold, rank, cap
        kept = [s for s in scored if s.similarity_score >= options.min_similarity_score]
        kept.sort(key=lambda s: s.similarity_score, reverse=True)
        comparables = kept[:options.max_comparables]

        logger.debug(
            "Comparables for %s: %d eligible, %d above threshold, %d returned",
            subject.id, len(eligible), len(kept), len(comparables),
        )

        return ComparablesResult(
            comparables=comparables,
            total_found=len(eligible),
            search_criteria=self._search_criteria(subject, options),
        )

    def _score_all(
        self,
        subject: SubjectProperty,
        candidates: List[ComparableCandidate],
    ) -> List[ScoredComparable]:
        if self._executor is None:
            return [self.score(subject, c) for c in candidates]
        return list(self._executor.map(lambda c: self.score(subject, c), candidates))

    def score(
        self,
        subject: SubjectProperty,
        candidate: ComparableCandidate,
    ) -> ScoredComparable:
        """Score one candidate and compute its adjusted price."""
        distance = self.distance_km(subject, candidate)
        adjustments = self.calculate_adjustments(subject, candidate)

        return ScoredComparable(
            candidate=candidate,
            similarity_score=self.calculate_similarity(subject, candidate, distance),
            adjustments=adjustments,
            adjusted_price_cents=self._adjusted_price(candidate, adjustments),
            distance_km=distance,
        )

    # =========================================================================
    # Similarity
    # =========================================================================

    @staticmethod
    def distance_km(
        subject: SubjectProperty,
        candidate: ComparableCandidate,
    ) -> Optional[float]:
        """Great-circle distance, or None when either side lacks coordinates."""
        if not (subject.has_coordinates and candidate.has_coordinates):
            return None
        return haversine_km(
            subject.latitude, subject.longitude,
            candidate.latitude, candidate.longitude,
        )

    def calculate_similarity(
        self,
        subject: SubjectProperty,
        candidate: ComparableCandidate,
        distance: Optional[float] = None,
    ) -> float:
        """
        Calculate similarity score (0-100).

        Args:
            subject: The subject property
            candidate: Candidate being scored
            distance: Pre-computed distance in km (computed when omitted)

        Returns:
            Score rounded to 1 decimal, never below 0
        """
        score = 100.0

        if candidate.property_type != subject.property_type:
            score -= PENALTY_PROPERTY_TYPE

        bedroom_diff = abs((subject.bedrooms or 0) - (candidate.bedrooms or 0))
        score -= min(bedroom_diff * PENALTY_PER_BEDROOM, PENALTY_CAP_BEDROOMS)

        bathroom_diff = abs((subject.bathrooms or 0.0) - (candidate.bathrooms or 0.0))
        score -= min(bathroom_diff * PENALTY_PER_BATHROOM, PENALTY_CAP_BATHROOMS)

        subject_area = subject.constructed_area or 0
        candidate_area = candidate.constructed_area or 0
        if subject_area > 0 and candidate_area > 0:
            size_diff_pct = abs(1 - candidate_area / subject_area) * 100
            score -= min(size_diff_pct / SIZE_PERCENT_PER_POINT, PENALTY_CAP_SIZE)

        if distance is None:
            distance = self.distance_km(subject, candidate)
        if distance is not None:
            score -= min(distance * PENALTY_PER_KM, PENALTY_CAP_LOCATION)

        if (subject.year_built or 0) > 0 and (candidate.year_built or 0) > 0:
            year_diff = abs(subject.year_built - candidate.year_built)
            score -= min(year_diff // YEARS_PER_POINT, PENALTY_CAP_YEAR)

        return max(round_half_up(score, 1), 0.0)

    # =========================================================================
    # Adjustments
    # =========================================================================

    @staticmethod
    def calculate_adjustments(
        subject: SubjectProperty,
        candidate: ComparableCandidate,
    ) -> tuple:
        """
        Build the ordered adjustments for a candidate.

        Every difference is (subject - candidate); a positive amount means
        the candidate is inferior to the subject and its price moves up.
        """
        adjustments = []

        bedroom_diff = (subject.bedrooms or 0) - (candidate.bedrooms or 0)
        if bedroom_diff != 0:
            adjustments.append(PriceAdjustment(
                "bedrooms", bedroom_diff, bedroom_diff * ADJUSTMENT_PER_BEDROOM,
            ))

        bathroom_diff = (subject.bathrooms or 0.0) - (candidate.bathrooms or 0.0)
        if abs(bathroom_diff) >= MIN_BATHROOM_DIFF:
            adjustments.append(PriceAdjustment(
                "bathrooms", bathroom_diff,
                round_half_up(bathroom_diff * ADJUSTMENT_PER_BATHROOM),
            ))

        subject_area = subject.constructed_area or 0
        candidate_area = candidate.constructed_area or 0
        if subject_area > 0 and candidate_area > 0:
            size_diff = subject_area - candidate_area
            if abs(size_diff) > MIN_AREA_DIFF:
                adjustments.append(PriceAdjustment(
                    "size", round_half_up(size_diff),
                    round_half_up(size_diff * ADJUSTMENT_PER_AREA_UNIT),
                ))

        if (subject.year_built or 0) > 0 and (candidate.year_built or 0) > 0:
            year_diff = subject.year_built - candidate.year_built
            if abs(year_diff) > MIN_YEAR_DIFF:
                adjustments.append(PriceAdjustment(
                    "year_built", year_diff, year_diff * ADJUSTMENT_PER_YEAR,
                ))

        garage_diff = (subject.garages or 0) - (candidate.garages or 0)
        if garage_diff != 0:
            adjustments.append(PriceAdjustment(
                "garages", garage_diff, garage_diff * ADJUSTMENT_PER_GARAGE,
            ))

        return tuple(adjustments)

    @staticmethod
    def _adjusted_price(
        candidate: ComparableCandidate,
        adjustments: tuple,
    ) -> Optional[int]:
        price = candidate.price_cents
        if price is None or price <= 0:
            return None
        return price + sum(adj.amount_cents for adj in adjustments)

    @staticmethod
    def _search_criteria(subject: SubjectProperty, options: SearchOptions) -> dict:
        return {
            "radius_km": options.radius_km,
            "months_back": options.months_back,
            "max_comparables": options.max_comparables,
            "min_similarity_score": options.min_similarity_score,
            "property_type": subject.property_type,
            "bedrooms": subject.bedrooms,
            "bathrooms": subject.bathrooms,
            "constructed_area": subject.constructed_area,
            "location": {
                "city": subject.city,
                "region": subject.region,
                "latitude": subject.latitude,
                "longitude": subject.longitude,
            },
        }
