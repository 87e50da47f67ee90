"""
Data models for the CMA comparables pipeline.

Defines the subject property, inventory candidates, scored comparables
and the market statistics derived from them. All prices are integer
minor currency units (cents).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class ListingType(Enum):
    """
    Listing classification.

    Sale <-> Sale only
    Rental <-> Rental only
    """
    SALE = "sale"
    RENTAL = "rental"


@dataclass(frozen=True)
class Listing:
    """
    A listing resolved once at ingestion time.

    Carries the price that belongs to its own listing type, so callers never
    have to probe for sale vs rental price fields.
    """
    listing_type: ListingType
    price_cents: Optional[int] = None
    currency: str = "USD"

    @property
    def is_sale(self) -> bool:
        return self.listing_type == ListingType.SALE

    @property
    def is_rental(self) -> bool:
        return self.listing_type == ListingType.RENTAL

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> Optional["Listing"]:
        """
        Resolve a listing from a raw inventory record.

        Sale listings use the current sale price, rental listings the monthly
        rental price. A record flagged for both is treated as a sale.

        Args:
            record: Raw mapping with for_sale/for_rent flags and price fields

        Returns:
            Listing, or None when the record is neither for sale nor for rent
        """
        if record.get("for_sale"):
            price = record.get("price_sale_current_cents")
            currency = record.get("price_sale_current_currency") or "USD"
            listing_type = ListingType.SALE
        elif record.get("for_rent"):
            price = record.get("price_rental_monthly_current_cents")
            currency = record.get("price_rental_monthly_current_currency") or "USD"
            listing_type = ListingType.RENTAL
        else:
            return None

        price_cents = int(price) if price is not None and int(price) > 0 else None
        return cls(listing_type=listing_type, price_cents=price_cents, currency=currency)


@dataclass(frozen=True)
class SubjectProperty:
    """
    The property being analysed.

    Immutable for the duration of one generation run.
    """
    id: str
    reference: str = ""

    # Address
    street: str = ""
    city: str = ""
    region: str = ""
    postal_code: str = ""
    country: str = ""

    # Location (optional)
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    # Structure
    property_type: Optional[str] = None
    bedrooms: int = 0
    bathrooms: float = 0.0
    constructed_area: float = 0.0
    plot_area: Optional[float] = None
    year_built: Optional[int] = None
    garages: int = 0

    listing: Optional[Listing] = None

    def __post_init__(self):
        if self.constructed_area is not None and self.constructed_area < 0:
            raise ValueError("constructed_area must be non-negative")
        if self.bedrooms is not None and self.bedrooms < 0:
            raise ValueError("bedrooms must be non-negative")

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def listing_type(self) -> Optional[ListingType]:
        return self.listing.listing_type if self.listing else None

    @property
    def full_address(self) -> str:
        """Street, city and postal code joined, blanks dropped."""
        return ", ".join(p for p in (self.street, self.city, self.postal_code) if p)


@dataclass(frozen=True)
class ComparableCandidate:
    """
    A property drawn from a tenant's inventory.

    Same shape as SubjectProperty plus a resolved listing, a visibility
    flag and a primary photo.
    """
    id: str
    reference: str = ""

    street: str = ""
    city: str = ""
    region: str = ""
    postal_code: str = ""
    country: str = ""

    latitude: Optional[float] = None
    longitude: Optional[float] = None

    property_type: Optional[str] = None
    bedrooms: int = 0
    bathrooms: float = 0.0
    constructed_area: float = 0.0
    plot_area: Optional[float] = None
    year_built: Optional[int] = None
    garages: int = 0

    listing: Optional[Listing] = None
    visible: bool = True
    photo_url: Optional[str] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def price_cents(self) -> Optional[int]:
        return self.listing.price_cents if self.listing else None

    @property
    def currency(self) -> str:
        return self.listing.currency if self.listing else "USD"

    @property
    def full_address(self) -> str:
        return ", ".join(p for p in (self.street, self.city, self.postal_code) if p)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "ComparableCandidate":
        """
        Build a candidate from a raw inventory record.

        The listing (and therefore the price) is resolved here, once.
        """
        return cls(
            id=str(record["id"]),
            reference=record.get("reference") or "",
            street=record.get("street_address") or record.get("street") or "",
            city=record.get("city") or "",
            region=record.get("region") or "",
            postal_code=record.get("postal_code") or "",
            country=record.get("country") or "",
            latitude=record.get("latitude"),
            longitude=record.get("longitude"),
            property_type=record.get("prop_type_key") or record.get("property_type"),
            bedrooms=int(record.get("count_bedrooms") or record.get("bedrooms") or 0),
            bathrooms=float(record.get("count_bathrooms") or record.get("bathrooms") or 0),
            constructed_area=float(record.get("constructed_area") or 0),
            plot_area=record.get("plot_area"),
            year_built=record.get("year_construction") or record.get("year_built"),
            garages=int(record.get("count_garages") or record.get("garages") or 0),
            listing=Listing.from_record(record),
            visible=bool(record.get("visible", True)),
            photo_url=record.get("primary_image_url") or record.get("photo_url"),
        )

    def to_subject(self) -> SubjectProperty:
        """View this inventory property as the subject of a CMA."""
        return SubjectProperty(
            id=self.id,
            reference=self.reference,
            street=self.street,
            city=self.city,
            region=self.region,
            postal_code=self.postal_code,
            country=self.country,
            latitude=self.latitude,
            longitude=self.longitude,
            property_type=self.property_type,
            bedrooms=self.bedrooms,
            bathrooms=self.bathrooms,
            constructed_area=self.constructed_area,
            plot_area=self.plot_area,
            year_built=self.year_built,
            garages=self.garages,
            listing=self.listing,
        )


@dataclass(frozen=True)
class SearchOptions:
    """
    Comparable search options.

    months_back is echoed into search criteria but not applied as a filter.
    """
    radius_km: float = 2.0
    months_back: int = 6
    max_comparables: int = 10
    min_similarity_score: float = 50.0

    def __post_init__(self):
        if self.radius_km <= 0:
            raise ValueError("radius_km must be positive")
        if self.months_back < 0:
            raise ValueError("months_back must be non-negative")
        if self.max_comparables < 1:
            raise ValueError("max_comparables must be at least 1")
        if not 0 <= self.min_similarity_score <= 100:
            raise ValueError("min_similarity_score must be between 0 and 100")


@dataclass(frozen=True)
class PriceAdjustment:
    """A signed correction toward subject parity."""
    category: str
    difference: float
    amount_cents: int

    def to_dict(self) -> dict:
        return {"difference": self.difference, "adjustment_cents": self.amount_cents}


@dataclass(frozen=True)
class ScoredComparable:
    """
    A candidate with its similarity score and price adjustments.

    Transient: created once per finder run, never persisted as an entity.
    """
    candidate: ComparableCandidate
    similarity_score: float
    adjustments: Tuple[PriceAdjustment, ...] = ()
    adjusted_price_cents: Optional[int] = None
    distance_km: Optional[float] = None

    @property
    def price_cents(self) -> Optional[int]:
        return self.candidate.price_cents

    @property
    def constructed_area(self) -> float:
        return self.candidate.constructed_area

    @property
    def total_adjustment_cents(self) -> int:
        return sum(adj.amount_cents for adj in self.adjustments)

    def to_dict(self) -> dict:
        """Snapshot shape stored on the report."""
        c = self.candidate
        return {
            "id": c.id,
            "reference": c.reference,
            "address": c.full_address,
            "city": c.city,
            "property_type": c.property_type,
            "bedrooms": c.bedrooms,
            "bathrooms": c.bathrooms,
            "constructed_area": c.constructed_area,
            "year_built": c.year_built,
            "garages": c.garages,
            "price_cents": c.price_cents,
            "currency": c.currency,
            "similarity_score": self.similarity_score,
            "adjustments": {adj.category: adj.to_dict() for adj in self.adjustments},
            "adjusted_price_cents": self.adjusted_price_cents,
            "distance_km": self.distance_km,
            "photo_url": c.photo_url,
        }


@dataclass
class ComparablesResult:
    """
    Result of a comparables search.

    total_found counts candidates that passed the filters, before the
    similarity threshold and the cap were applied.
    """
    comparables: List[ScoredComparable]
    total_found: int
    search_criteria: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.comparables


@dataclass(frozen=True)
class PriceRange:
    low_cents: int
    high_cents: int

    @property
    def range_cents(self) -> int:
        return self.high_cents - self.low_cents

    def to_dict(self) -> dict:
        return {
            "low_cents": self.low_cents,
            "high_cents": self.high_cents,
            "range_cents": self.range_cents,
        }


@dataclass(frozen=True)
class SubjectValueEstimate:
    price_per_area_cents: int
    subject_area: float
    estimated_value_cents: int

    def to_dict(self) -> dict:
        return {
            "price_per_area_cents": self.price_per_area_cents,
            "subject_area": self.subject_area,
            "estimated_value_cents": self.estimated_value_cents,
        }


@dataclass(frozen=True)
class MarketStatistics:
    """
    Aggregates over a list of scored comparables.

    Every aggregate is None when its input set was empty. None means
    "insufficient data", never zero.
    """
    comparable_count: int
    currency: str
    average_price_cents: Optional[int] = None
    median_price_cents: Optional[int] = None
    adjusted_average_cents: Optional[int] = None
    adjusted_median_cents: Optional[int] = None
    price_per_area_cents: Optional[int] = None
    price_range: Optional[PriceRange] = None
    price_std_dev_cents: Optional[int] = None
    average_size: Optional[float] = None
    median_size: Optional[float] = None
    min_size: Optional[float] = None
    max_size: Optional[float] = None
    average_similarity: Optional[float] = None
    subject_size: Optional[float] = None
    subject_value_estimate: Optional[SubjectValueEstimate] = None

    @property
    def is_empty(self) -> bool:
        return self.comparable_count == 0

    def to_dict(self) -> dict:
        """Structured map persisted on the report; unavailable values omitted."""
        data = {
            "comparable_count": self.comparable_count,
            "currency": self.currency,
            "average_price_cents": self.average_price_cents,
            "median_price_cents": self.median_price_cents,
            "adjusted_average_cents": self.adjusted_average_cents,
            "adjusted_median_cents": self.adjusted_median_cents,
            "price_per_area_cents": self.price_per_area_cents,
            "price_range": self.price_range.to_dict() if self.price_range else None,
            "price_std_dev_cents": self.price_std_dev_cents,
            "average_size": self.average_size,
            "median_size": self.median_size,
            "min_size": self.min_size,
            "max_size": self.max_size,
            "average_similarity": self.average_similarity,
            "subject_size": self.subject_size,
            "subject_value_estimate": (
                self.subject_value_estimate.to_dict() if self.subject_value_estimate else None
            ),
        }
        return {k: v for k, v in data.items() if v is not None}
