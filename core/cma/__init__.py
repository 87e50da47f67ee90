"""
CMA comparables engine.

Finds comparable properties for a subject, scores their similarity,
adjusts their prices toward subject parity and summarises the market.
"""

from .models import (
    ListingType,
    Listing,
    SubjectProperty,
    ComparableCandidate,
    SearchOptions,
    PriceAdjustment,
    ScoredComparable,
    ComparablesResult,
    PriceRange,
    SubjectValueEstimate,
    MarketStatistics,
)
from .filters import CandidateFilter, haversine_km, bounding_box
from .finder import ComparablesFinder
from .statistics import StatisticsCalculator
from .inventory import CandidateInventory, InMemoryInventory

__all__ = [
    # Models
    "ListingType",
    "Listing",
    "SubjectProperty",
    "ComparableCandidate",
    "SearchOptions",
    "PriceAdjustment",
    "ScoredComparable",
    "ComparablesResult",
    "PriceRange",
    "SubjectValueEstimate",
    "MarketStatistics",
    # Filters
    "CandidateFilter",
    "haversine_km",
    "bounding_box",
    # Engine
    "ComparablesFinder",
    "StatisticsCalculator",
    # Inventory
    "CandidateInventory",
    "InMemoryInventory",
]
