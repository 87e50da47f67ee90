"""
CMA Routes - Web API for Comparative Market Analysis reports

All report routes are scoped by website:

    GET    /api/websites/{website_id}/cmas              list reports
    POST   /api/websites/{website_id}/cmas              generate a report
    GET    /api/websites/{website_id}/cmas/{id}         show a report
    DELETE /api/websites/{website_id}/cmas/{id}         delete a report
    GET    /api/websites/{website_id}/cmas/{id}/pdf     download the PDF
    POST   /api/websites/{website_id}/cmas/{id}/share   issue a share link

    GET    /api/reports/shared/{share_token}            public shared report
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from core.narrative.errors import ConfigurationError, RateLimitError
from core.reports import CmaOptions, Report, ReportNotFoundError, ReportStateError, User
from web.services import CmaServices

logger = logging.getLogger(__name__)


# =============================================================================
# Router Setup
# =============================================================================

router = APIRouter(prefix="/api/websites/{website_id}/cmas", tags=["cma"])
shared_router = APIRouter(prefix="/api/reports/shared", tags=["cma"])

LIST_LIMIT = 50


def get_services(request: Request) -> CmaServices:
    return request.app.state.services


# =============================================================================
# Request Models
# =============================================================================


class CreateCmaRequest(BaseModel):
    """Request body for CMA generation."""
    property_id: str
    radius_km: float = Field(default=2.0, gt=0)
    months_back: int = Field(default=6, ge=0)
    max_comparables: int = Field(default=10, ge=1, le=50)
    min_similarity_score: float = Field(default=50.0, ge=0, le=100)
    title: Optional[str] = None
    generate_pdf: bool = True
    branding: dict[str, Any] = Field(default_factory=dict)
    # Requesting agent
    user_id: Optional[str] = None
    agent_name: Optional[str] = None
    agent_email: Optional[str] = None

    def to_options(self) -> CmaOptions:
        return CmaOptions(
            radius_km=self.radius_km,
            months_back=self.months_back,
            max_comparables=self.max_comparables,
            min_similarity_score=self.min_similarity_score,
            generate_pdf=self.generate_pdf,
            title=self.title,
            branding=self.branding,
        )

    def to_user(self) -> Optional[User]:
        if not self.user_id:
            return None
        return User(id=self.user_id, full_name=self.agent_name, email=self.agent_email)


# =============================================================================
# Serialization
# =============================================================================


def serialize_report(report: Report, include_details: bool = False) -> dict:
    data = {
        "id": report.id,
        "reference_number": report.reference_number,
        "title": report.title,
        "report_type": report.report_type,
        "status": report.status.value,
        "created_at": report.created_at.isoformat(),
        "updated_at": report.updated_at.isoformat(),
        "generated_at": report.generated_at.isoformat() if report.generated_at else None,
        "pdf_ready": report.pdf_ready,
        "shared": report.share_token is not None,
        "share_token": report.share_token,
        "view_count": report.view_count,
    }

    if include_details:
        data.update({
            "subject_property": report.subject_details or None,
            "suggested_price": report.suggested_price_range,
            "comparables": report.comparable_properties,
            "comparable_count": report.comparable_count,
            "statistics": report.market_statistics,
            "insights": report.ai_insights,
            "branding": report.branding,
            "location": {
                "city": report.city,
                "region": report.region,
                "postal_code": report.postal_code,
                "latitude": report.latitude,
                "longitude": report.longitude,
                "radius_km": report.radius_km,
            },
        })

    return {k: v for k, v in data.items() if v is not None}


def _get_report_or_404(services: CmaServices, website_id: str, report_id: str) -> Report:
    try:
        return services.repository.get(website_id, report_id)
    except ReportNotFoundError:
        raise HTTPException(status_code=404, detail="Report not found")


# =============================================================================
# Routes
# =============================================================================


@router.get("")
def list_cmas(
    website_id: str,
    limit: int = Query(default=LIST_LIMIT, ge=1, le=200),
    services: CmaServices = Depends(get_services),
):
    reports = services.repository.list_for_website(website_id, report_type="cma", limit=limit)
    return {
        "success": True,
        "reports": [serialize_report(r) for r in reports],
        "counts": services.repository.count_by_status(website_id),
    }


@router.post("", status_code=201)
def create_cma(
    website_id: str,
    body: CreateCmaRequest,
    services: CmaServices = Depends(get_services),
):
    """
    Generate a new CMA for a property of this website.

    Returns:
        201 with the report on success (message may note that no
        comparables were found); 422 when the run failed or completed
        without insights; 503 when text generation is not configured;
        429 when the provider is rate limiting.
    """
    candidate = services.inventory.get_property(website_id, body.property_id)
    if candidate is None:
        raise HTTPException(status_code=404, detail="Property not found")

    try:
        result = services.generator.generate(
            candidate.to_subject(),
            services.get_website(website_id),
            user=body.to_user(),
            options=body.to_options(),
        )
    except ConfigurationError as e:
        content = {
            "success": False,
            "error": f"AI is not configured: {e}",
            "provider": e.provider,
            "model": e.model,
        }
        return JSONResponse(
            status_code=503,
            content={k: v for k, v in content.items() if v is not None},
        )
    except RateLimitError as e:
        content = {
            "success": False,
            "error": f"Rate limit exceeded for {e.provider or 'AI provider'}. Please try again later.",
            "retry_after": e.retry_after,
            "provider": e.provider,
            "model": e.model,
        }
        headers = {"Retry-After": str(int(e.retry_after))} if e.retry_after else None
        return JSONResponse(
            status_code=429,
            content={k: v for k, v in content.items() if v is not None},
            headers=headers,
        )

    if result.success:
        content = {
            "success": True,
            "report": serialize_report(result.report, include_details=True),
            "comparable_count": len(result.comparables),
            "message": result.error,
        }
        return {k: v for k, v in content.items() if v is not None}

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": result.error,
            "report": serialize_report(result.report),
        },
    )


@router.get("/{report_id}")
def show_cma(
    website_id: str,
    report_id: str,
    services: CmaServices = Depends(get_services),
):
    report = _get_report_or_404(services, website_id, report_id)
    return {"success": True, "report": serialize_report(report, include_details=True)}


@router.delete("/{report_id}")
def delete_cma(
    website_id: str,
    report_id: str,
    services: CmaServices = Depends(get_services),
):
    if not services.repository.delete(website_id, report_id):
        raise HTTPException(status_code=404, detail="Report not found")
    return {"success": True, "message": "Report deleted successfully"}


@router.get("/{report_id}/pdf")
def download_pdf(
    website_id: str,
    report_id: str,
    services: CmaServices = Depends(get_services),
):
    report = _get_report_or_404(services, website_id, report_id)

    if not report.pdf_ready:
        if not report.is_completed:
            raise HTTPException(status_code=404, detail="PDF not available")
        # Render on the fly
        try:
            services.renderer.render(report.id, website_id)
        except Exception:
            logger.exception("On-demand PDF rendering failed for report %s", report.id)
            return JSONResponse(
                status_code=404,
                content={"success": False, "error": "PDF not available"},
            )

    return Response(
        content=report.pdf_data,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{report.pdf_filename}"'},
    )


@router.post("/{report_id}/share")
def share_cma(
    website_id: str,
    report_id: str,
    request: Request,
    services: CmaServices = Depends(get_services),
):
    report = _get_report_or_404(services, website_id, report_id)

    if report.share_token is None:
        try:
            report.mark_shared()
        except ReportStateError:
            return JSONResponse(
                status_code=422,
                content={"success": False, "error": "Report must be completed before sharing"},
            )
        services.repository.save(report)

    share_url = str(request.url_for("view_shared_report", share_token=report.share_token))
    return {
        "success": True,
        "share_token": report.share_token,
        "share_url": share_url,
        "shared_at": report.shared_at.isoformat() if report.shared_at else None,
    }


@shared_router.get("/{share_token}", name="view_shared_report")
def view_shared_report(
    share_token: str,
    services: CmaServices = Depends(get_services),
):
    report = services.repository.find_by_share_token(share_token)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")

    report.record_view()
    services.repository.save(report)
    return {"success": True, "report": serialize_report(report, include_details=True)}
