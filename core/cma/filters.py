"""
Candidate Filters for the CMA comparables finder.

Implements hard filters for comparable selection:
- Geographic bounding box (radius in km)
- Property type (exact match)
- Listing type (sale with sale, rental with rental)
- Constructed area (0.7x - 1.3x of subject)
- Bedrooms (subject +/- 1)
- Identity (never the subject itself)
- Visibility (published only)
"""

import math
from typing import List, Optional, Tuple

from .models import ComparableCandidate, SubjectProperty


# =============================================================================
# Configuration Constants
# =============================================================================

# Kilometres per degree of latitude
KM_PER_DEGREE = 111.0

# Mean Earth radius (km)
EARTH_RADIUS_KM = 6371.0

# Constructed area band relative to subject
SIZE_LOWER_RATIO = 0.7
SIZE_UPPER_RATIO = 1.3

# Bedroom tolerance either side of subject
BEDROOM_TOLERANCE = 1


def haversine_km(
    lat1: float, lon1: float,
    lat2: float, lon2: float,
) -> float:
    """
    Calculate great-circle distance between two points in km.

    Args:
        lat1, lon1: First point coordinates (degrees)
        lat2, lon2: Second point coordinates (degrees)

    Returns:
        Distance in km, rounded to 2 decimals
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return round(EARTH_RADIUS_KM * c, 2)


def bounding_box(
    latitude: float,
    longitude: float,
    radius_km: float,
) -> Tuple[float, float, float, float]:
    """
    Approximate box around a point.

    Returns:
        (min_lat, max_lat, min_lon, max_lon)
    """
    lat_delta = radius_km / KM_PER_DEGREE
    lon_delta = radius_km / (KM_PER_DEGREE * math.cos(math.radians(latitude)))
    return (
        latitude - lat_delta,
        latitude + lat_delta,
        longitude - lon_delta,
        longitude + lon_delta,
    )


class CandidateFilter:
    """
    Applies hard filters to select eligible comparable candidates.

    A candidate must pass ALL applicable filters. Filters that depend on a
    subject attribute are skipped when the subject lacks that attribute.
    """

    def __init__(self, radius_km: float):
        """
        Initialize filter with search radius.

        Args:
            radius_km: Bounding box half-width in km
        """
        self._radius_km = radius_km

    def filter_candidates(
        self,
        candidates: List[ComparableCandidate],
        subject: SubjectProperty,
    ) -> List[ComparableCandidate]:
        """
        Filter candidates down to those eligible for scoring.

        Input order is preserved.
        """
        box = None
        if subject.has_coordinates:
            box = bounding_box(subject.latitude, subject.longitude, self._radius_km)

        return [c for c in candidates if self.is_eligible(c, subject, box)]

    def is_eligible(
        self,
        candidate: ComparableCandidate,
        subject: SubjectProperty,
        box: Optional[Tuple[float, float, float, float]] = None,
    ) -> bool:
        """Check a single candidate against every filter."""
        if candidate.id == subject.id:
            return False

        if not candidate.visible:
            return False

        if box is not None and not self._is_within_box(candidate, box):
            return False

        if subject.property_type and candidate.property_type != subject.property_type:
            return False

        if not self._listing_matches(candidate, subject):
            return False

        if subject.constructed_area and subject.constructed_area > 0:
            if not self._is_within_size_band(candidate, subject.constructed_area):
                return False

        if subject.bedrooms and subject.bedrooms > 0:
            if abs((candidate.bedrooms or 0) - subject.bedrooms) > BEDROOM_TOLERANCE:
                return False

        return True

    @staticmethod
    def _is_within_box(
        candidate: ComparableCandidate,
        box: Tuple[float, float, float, float],
    ) -> bool:
        """Candidates without coordinates cannot be placed, so they fail."""
        if not candidate.has_coordinates:
            return False
        min_lat, max_lat, min_lon, max_lon = box
        return (
            min_lat <= candidate.latitude <= max_lat
            and min_lon <= candidate.longitude <= max_lon
        )

    @staticmethod
    def _listing_matches(
        candidate: ComparableCandidate,
        subject: SubjectProperty,
    ) -> bool:
        if subject.listing is None:
            return True
        if candidate.listing is None:
            return False
        return candidate.listing.listing_type == subject.listing.listing_type

    @staticmethod
    def _is_within_size_band(
        candidate: ComparableCandidate,
        subject_area: float,
    ) -> bool:
        area = candidate.constructed_area or 0
        return subject_area * SIZE_LOWER_RATIO <= area <= subject_area * SIZE_UPPER_RATIO
