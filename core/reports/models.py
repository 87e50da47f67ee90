"""
Market report entity and its state machine.

The report is the only persisted object of a CMA run. Comparables,
statistics and insights are stored on it as plain structured data.

Status flow:
    draft -> generating -> completed -> shared
    generating -> draft   (rollback after a failed run)

Multi-tenant: every report belongs to exactly one website.
"""

from __future__ import annotations

import base64
import secrets
import string
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from utils.formatting import format_price


REPORT_TYPE_CMA = "cma"
REPORT_TYPES = (REPORT_TYPE_CMA, "market_report")

_REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


class ReportStatus(Enum):
    DRAFT = "draft"
    GENERATING = "generating"
    COMPLETED = "completed"
    SHARED = "shared"


class ReportStateError(ValueError):
    """Raised for an illegal report status transition."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_reference_number(now: Optional[datetime] = None) -> str:
    """CMA-YYYYMMDD-XXXXXX with six uppercase alphanumerics."""
    now = now or _utcnow()
    suffix = "".join(secrets.choice(_REFERENCE_ALPHABET) for _ in range(6))
    return f"CMA-{now:%Y%m%d}-{suffix}"


def generate_share_token() -> str:
    return secrets.token_urlsafe(16)


# =============================================================================
# Tenant context
# =============================================================================


@dataclass(frozen=True)
class Website:
    """Tenant website. Passed explicitly; there is no ambient tenant."""
    id: str
    company_name: Optional[str] = None
    logo_url: Optional[str] = None
    default_currency: Optional[str] = None
    agency_name: Optional[str] = None
    agency_phone: Optional[str] = None

    @property
    def display_name(self) -> Optional[str]:
        return self.agency_name or self.company_name


@dataclass(frozen=True)
class User:
    id: str
    full_name: Optional[str] = None
    email: Optional[str] = None


# =============================================================================
# Report
# =============================================================================


@dataclass
class Report:
    """A CMA report for one subject property."""

    website_id: str
    title: str
    subject_property_id: Optional[str] = None
    user_id: Optional[str] = None
    report_type: str = REPORT_TYPE_CMA
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    reference_number: str = field(default_factory=generate_reference_number)
    status: ReportStatus = ReportStatus.DRAFT

    # Denormalized location
    city: Optional[str] = None
    region: Optional[str] = None
    postal_code: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius_km: Optional[float] = None

    subject_details: dict[str, Any] = field(default_factory=dict)
    branding: dict[str, Any] = field(default_factory=dict)

    # Generated artifacts (structured data)
    market_statistics: Optional[dict[str, Any]] = None
    comparable_properties: Optional[list[dict[str, Any]]] = None
    ai_insights: Optional[dict[str, Any]] = None
    suggested_price_low_cents: Optional[int] = None
    suggested_price_high_cents: Optional[int] = None
    suggested_price_currency: str = "USD"
    generation_request_id: Optional[str] = None

    generated_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    share_token: Optional[str] = None
    shared_at: Optional[datetime] = None
    view_count: int = 0

    pdf_data: Optional[bytes] = None

    def __post_init__(self):
        if self.report_type not in REPORT_TYPES:
            raise ValueError(f"report_type must be one of {REPORT_TYPES}")
        if not self.title:
            raise ValueError("title is required")

    # =========================================================================
    # State transitions
    # =========================================================================

    def mark_generating(self) -> None:
        if self.status != ReportStatus.DRAFT:
            raise ReportStateError(
                f"Report {self.reference_number} cannot start generating from {self.status.value}"
            )
        self.status = ReportStatus.GENERATING
        self._touch()

    def mark_completed(
        self,
        insights: Optional[dict[str, Any]] = None,
        statistics: Optional[dict[str, Any]] = None,
        comparables: Optional[list[dict[str, Any]]] = None,
        suggested_price: Optional[dict[str, Any]] = None,
        generation_request_id: Optional[str] = None,
    ) -> None:
        """
        Complete a generating report.

        Any artifact left as None stays unset; a completed report may lack
        insights (partial success) or everything (no comparables found).
        """
        if self.status != ReportStatus.GENERATING:
            raise ReportStateError(
                f"Report {self.reference_number} cannot complete from {self.status.value}"
            )
        if insights is not None:
            self.ai_insights = insights
        if statistics is not None:
            self.market_statistics = statistics
        if comparables is not None:
            self.comparable_properties = comparables
        if suggested_price is not None:
            self.suggested_price_low_cents = suggested_price.get("low_cents")
            self.suggested_price_high_cents = suggested_price.get("high_cents")
            self.suggested_price_currency = (
                suggested_price.get("currency") or self.suggested_price_currency
            )
        if generation_request_id is not None:
            self.generation_request_id = generation_request_id

        self.status = ReportStatus.COMPLETED
        self.generated_at = _utcnow()
        self._touch()

    def mark_shared(self) -> None:
        if self.status not in (ReportStatus.COMPLETED, ReportStatus.SHARED):
            raise ReportStateError(
                f"Report {self.reference_number} must be completed before sharing"
            )
        if self.status == ReportStatus.SHARED and self.share_token:
            return
        self.status = ReportStatus.SHARED
        self.shared_at = _utcnow()
        self.share_token = generate_share_token()
        self._touch()

    def reset_to_draft(self) -> None:
        """Roll back after a failed run so the same report can be retried."""
        if self.status == ReportStatus.SHARED:
            raise ReportStateError(f"Report {self.reference_number} is already shared")
        self.status = ReportStatus.DRAFT
        self._touch()

    def record_view(self) -> None:
        self.view_count += 1

    def attach_pdf(self, data: bytes) -> None:
        self.pdf_data = data
        self._touch()

    def _touch(self) -> None:
        self.updated_at = _utcnow()

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def is_completed(self) -> bool:
        return self.status in (ReportStatus.COMPLETED, ReportStatus.SHARED)

    @property
    def pdf_ready(self) -> bool:
        return self.pdf_data is not None

    @property
    def pdf_filename(self) -> str:
        return f"{self.report_type}_{self.reference_number}.pdf"

    @property
    def comparable_count(self) -> int:
        return len(self.comparable_properties or [])

    @property
    def insights(self) -> dict[str, Any]:
        return self.ai_insights or {}

    @property
    def statistics(self) -> dict[str, Any]:
        return self.market_statistics or {}

    @property
    def company_name(self) -> Optional[str]:
        return self.branding.get("company_name")

    @property
    def agent_name(self) -> Optional[str]:
        return self.branding.get("agent_name")

    @property
    def suggested_price_range(self) -> Optional[dict[str, Any]]:
        if self.suggested_price_low_cents is None or self.suggested_price_high_cents is None:
            return None
        return {
            "low_cents": self.suggested_price_low_cents,
            "high_cents": self.suggested_price_high_cents,
            "currency": self.suggested_price_currency,
            "formatted_low": format_price(self.suggested_price_low_cents, self.suggested_price_currency),
            "formatted_high": format_price(self.suggested_price_high_cents, self.suggested_price_currency),
        }

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self, include_pdf: bool = False) -> dict[str, Any]:
        data = {
            "id": self.id,
            "reference_number": self.reference_number,
            "website_id": self.website_id,
            "user_id": self.user_id,
            "subject_property_id": self.subject_property_id,
            "report_type": self.report_type,
            "title": self.title,
            "status": self.status.value,
            "city": self.city,
            "region": self.region,
            "postal_code": self.postal_code,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "radius_km": self.radius_km,
            "subject_details": self.subject_details,
            "branding": self.branding,
            "market_statistics": self.market_statistics,
            "comparable_properties": self.comparable_properties,
            "ai_insights": self.ai_insights,
            "suggested_price_low_cents": self.suggested_price_low_cents,
            "suggested_price_high_cents": self.suggested_price_high_cents,
            "suggested_price_currency": self.suggested_price_currency,
            "generation_request_id": self.generation_request_id,
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "share_token": self.share_token,
            "shared_at": self.shared_at.isoformat() if self.shared_at else None,
            "view_count": self.view_count,
            "pdf_ready": self.pdf_ready,
        }
        if include_pdf and self.pdf_data is not None:
            data["pdf_data"] = base64.b64encode(self.pdf_data).decode("ascii")
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Report:
        def _dt(value: Optional[str]) -> Optional[datetime]:
            return datetime.fromisoformat(value) if value else None

        pdf = data.get("pdf_data")
        return cls(
            id=data["id"],
            reference_number=data["reference_number"],
            website_id=data["website_id"],
            user_id=data.get("user_id"),
            subject_property_id=data.get("subject_property_id"),
            report_type=data.get("report_type", REPORT_TYPE_CMA),
            title=data["title"],
            status=ReportStatus(data["status"]),
            city=data.get("city"),
            region=data.get("region"),
            postal_code=data.get("postal_code"),
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
            radius_km=data.get("radius_km"),
            subject_details=data.get("subject_details") or {},
            branding=data.get("branding") or {},
            market_statistics=data.get("market_statistics"),
            comparable_properties=data.get("comparable_properties"),
            ai_insights=data.get("ai_insights"),
            suggested_price_low_cents=data.get("suggested_price_low_cents"),
            suggested_price_high_cents=data.get("suggested_price_high_cents"),
            suggested_price_currency=data.get("suggested_price_currency") or "USD",
            generation_request_id=data.get("generation_request_id"),
            generated_at=_dt(data.get("generated_at")),
            created_at=_dt(data.get("created_at")) or _utcnow(),
            updated_at=_dt(data.get("updated_at")) or _utcnow(),
            share_token=data.get("share_token"),
            shared_at=_dt(data.get("shared_at")),
            view_count=data.get("view_count", 0),
            pdf_data=base64.b64decode(pdf) if pdf else None,
        )
