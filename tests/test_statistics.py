"""
Tests for CMA market statistics

Verifies:
- None (not zero) for every aggregate on empty input
- Median for odd and even counts
- Sample standard deviation
- Price per area as mean of per-comparable ratios
- Subject value estimate from adjusted prices
- Raw and adjusted prices extracted independently
"""

import pytest
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.cma import (
    ComparableCandidate,
    Listing,
    ListingType,
    ScoredComparable,
    StatisticsCalculator,
    SubjectProperty,
)
from core.cma.statistics import mean, median, sample_std_dev


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def create_scored():
    """Factory fixture for scored comparables."""
    counter = iter(range(1000))

    def _create(
        price_cents=None,
        adjusted_price_cents=None,
        constructed_area: float = 100.0,
        similarity_score: float = 90.0,
    ) -> ScoredComparable:
        listing = Listing(ListingType.SALE, price_cents, "EUR")
        candidate = ComparableCandidate(
            id=f"c{next(counter)}",
            constructed_area=constructed_area,
            listing=listing,
        )
        return ScoredComparable(
            candidate=candidate,
            similarity_score=similarity_score,
            adjusted_price_cents=adjusted_price_cents,
        )
    return _create


@pytest.fixture
def calculator():
    return StatisticsCalculator()


# =============================================================================
# Helper Function Tests
# =============================================================================

class TestHelpers:

    def test_median_odd(self):
        assert median([300, 100, 200]) == 200

    def test_median_even(self):
        assert median([100, 200, 300, 400]) == 250

    def test_median_rounds_half_up(self):
        assert median([100, 101]) == 101

    def test_mean_empty(self):
        assert mean([]) is None

    def test_std_dev_needs_two_values(self):
        assert sample_std_dev([100]) is None

    def test_std_dev_sample(self):
        # Sample variance of [2, 4, 4, 4, 5, 5, 7, 9] is 32/7
        assert sample_std_dev([2, 4, 4, 4, 5, 5, 7, 9]) == 2


# =============================================================================
# Calculator Tests
# =============================================================================

class TestStatisticsCalculator:

    def test_empty_returns_none_not_zero(self, calculator):
        stats = calculator.calculate([], currency="EUR")

        assert stats.comparable_count == 0
        assert stats.is_empty
        assert stats.currency == "EUR"
        assert stats.average_price_cents is None
        assert stats.median_price_cents is None
        assert stats.adjusted_average_cents is None
        assert stats.adjusted_median_cents is None
        assert stats.price_per_area_cents is None
        assert stats.price_range is None
        assert stats.price_std_dev_cents is None
        assert stats.to_dict() == {"comparable_count": 0, "currency": "EUR"}

    def test_median_of_three(self, calculator, create_scored):
        comps = [create_scored(price_cents=p) for p in (100, 200, 300)]
        assert calculator.calculate(comps).median_price_cents == 200

    def test_median_of_four(self, calculator, create_scored):
        comps = [create_scored(price_cents=p) for p in (100, 200, 300, 400)]
        assert calculator.calculate(comps).median_price_cents == 250

    def test_single_comparable(self, calculator, create_scored):
        comps = [create_scored(price_cents=300_000, adjusted_price_cents=300_000)]
        stats = calculator.calculate(comps)

        assert stats.average_price_cents == 300_000
        assert stats.median_price_cents == 300_000
        assert stats.adjusted_average_cents == 300_000
        assert stats.adjusted_median_cents == 300_000
        assert stats.price_std_dev_cents is None
        assert stats.price_range.range_cents == 0

    def test_price_range_and_average(self, calculator, create_scored):
        comps = [
            create_scored(price_cents=20_000_000),
            create_scored(price_cents=30_000_000),
            create_scored(price_cents=25_000_001),
        ]
        stats = calculator.calculate(comps)

        assert stats.price_range.low_cents == 20_000_000
        assert stats.price_range.high_cents == 30_000_000
        assert stats.average_price_cents == 25_000_000

    def test_price_per_area_is_mean_of_ratios(self, calculator, create_scored):
        comps = [
            create_scored(price_cents=10_000_000, constructed_area=100.0),  # 100,000 / sqm
            create_scored(price_cents=10_000_000, constructed_area=50.0),   # 200,000 / sqm
        ]
        # Ratio of totals would be 133,333
        assert calculator.calculate(comps).price_per_area_cents == 150_000

    def test_adjusted_and_raw_extracted_independently(self, calculator, create_scored):
        comps = [
            create_scored(price_cents=100, adjusted_price_cents=None),
            create_scored(price_cents=None, adjusted_price_cents=500),
        ]
        stats = calculator.calculate(comps)

        assert stats.comparable_count == 2
        assert stats.average_price_cents == 100
        assert stats.adjusted_average_cents == 500

    def test_size_statistics(self, calculator, create_scored):
        comps = [
            create_scored(price_cents=1, constructed_area=a, similarity_score=s)
            for a, s in ((80.0, 90.0), (100.0, 80.0), (125.0, 75.5))
        ]
        stats = calculator.calculate(comps)

        assert stats.min_size == 80.0
        assert stats.max_size == 125.0
        assert stats.median_size == 100.0
        assert stats.average_size == 101.7
        assert stats.average_similarity == 81.8

    def test_subject_value_estimate(self, calculator, create_scored):
        subject = SubjectProperty(id="s", constructed_area=120.0)
        comps = [
            create_scored(price_cents=1, adjusted_price_cents=10_000_000, constructed_area=100.0),
            create_scored(price_cents=1, adjusted_price_cents=24_000_000, constructed_area=200.0),
        ]
        estimate = calculator.calculate(comps, subject=subject).subject_value_estimate

        assert estimate.price_per_area_cents == 110_000
        assert estimate.subject_area == 120.0
        assert estimate.estimated_value_cents == 13_200_000

    def test_no_estimate_without_subject_area(self, calculator, create_scored):
        subject = SubjectProperty(id="s", constructed_area=0.0)
        comps = [create_scored(price_cents=1, adjusted_price_cents=100)]
        assert calculator.calculate(comps, subject=subject).subject_value_estimate is None

    def test_to_dict_omits_unavailable(self, calculator, create_scored):
        stats = calculator.calculate([create_scored(price_cents=100)])
        data = stats.to_dict()

        assert data["median_price_cents"] == 100
        assert "adjusted_median_cents" not in data
        assert "price_std_dev_cents" not in data
        assert data["price_range"] == {"low_cents": 100, "high_cents": 100, "range_cents": 0}
