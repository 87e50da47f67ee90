"""
CMA Generator - orchestrates the full report workflow.

Pipeline order:
1. CREATE - Report record in draft
2. FIND - Comparable properties from the website's inventory
3. MEASURE - Market statistics
4. NARRATE - Text-generation insights
5. COMPLETE - Persist artifacts and complete the report
6. RENDER - Enqueue PDF rendering

A failed narrative still completes the report (without insights). Any
exception rolls the report back to draft so it can be retried.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from core.cma.finder import ComparablesFinder
from core.cma.inventory import CandidateInventory
from core.cma.models import MarketStatistics, ScoredComparable, SearchOptions, SubjectProperty
from core.cma.statistics import StatisticsCalculator
from core.narrative.errors import ConfigurationError, RateLimitError
from core.narrative.insights import CmaInsightsGenerator, NarrativeInsights
from core.reports.models import REPORT_TYPE_CMA, Report, User, Website
from core.reports.repository import ReportRepository

logger = logging.getLogger(__name__)


NO_COMPARABLES_MESSAGE = "No comparable properties found within search criteria"


class ReportRenderer(ABC):
    """Document rendering collaborator notified when a report is usable."""

    @abstractmethod
    def enqueue(self, report_id: str, website_id: str) -> None:
        pass


@dataclass(frozen=True)
class CmaOptions:
    """Options for one CMA run."""
    radius_km: float = 2.0
    months_back: int = 6
    max_comparables: int = 10
    min_similarity_score: float = 50.0
    generate_pdf: bool = True
    title: Optional[str] = None
    branding: dict[str, Any] = field(default_factory=dict)

    def search_options(self) -> SearchOptions:
        return SearchOptions(
            radius_km=self.radius_km,
            months_back=self.months_back,
            max_comparables=self.max_comparables,
            min_similarity_score=self.min_similarity_score,
        )


@dataclass
class CmaResult:
    success: bool
    report: Report
    comparables: list[ScoredComparable] = field(default_factory=list)
    statistics: Optional[MarketStatistics] = None
    insights: Optional[NarrativeInsights] = None
    error: Optional[str] = None


class CmaGenerator:
    """
    Runs a CMA for a subject property on behalf of a website.

    Usage:
        generator = CmaGenerator(inventory, repository, insights)
        result = generator.generate(subject, website, user)
        if result.success:
            print(result.report.reference_number)
    """

    def __init__(
        self,
        inventory: CandidateInventory,
        repository: ReportRepository,
        insights_generator: CmaInsightsGenerator,
        renderer: Optional[ReportRenderer] = None,
        finder: Optional[ComparablesFinder] = None,
        statistics_calculator: Optional[StatisticsCalculator] = None,
    ):
        self._inventory = inventory
        self._repository = repository
        self._insights = insights_generator
        self._renderer = renderer
        self._finder = finder or ComparablesFinder()
        self._statistics = statistics_calculator or StatisticsCalculator()

    def generate(
        self,
        subject: SubjectProperty,
        website: Website,
        user: Optional[User] = None,
        options: Optional[CmaOptions] = None,
    ) -> CmaResult:
        """
        Create a new report and run the pipeline.

        Raises:
            ConfigurationError: narrative credentials missing or rejected
            RateLimitError: narrative provider throttled the request
        """
        options = options or CmaOptions()
        report = self._create_report(subject, website, user, options)
        return self._run(report, subject, website, options)

    def retry(
        self,
        report: Report,
        subject: SubjectProperty,
        website: Website,
        options: Optional[CmaOptions] = None,
    ) -> CmaResult:
        """Re-run the pipeline on an existing draft report."""
        return self._run(report, subject, website, options or CmaOptions())

    def _run(
        self,
        report: Report,
        subject: SubjectProperty,
        website: Website,
        options: CmaOptions,
    ) -> CmaResult:
        # Raises ReportStateError for a report that is not a draft
        report.mark_generating()
        self._repository.save(report)

        try:
            # Step 2: Find comparables
            search = self._finder.find(
                subject,
                self._inventory.candidates_for(website.id),
                options.search_options(),
            )
            comparables = search.comparables

            if not comparables:
                report.mark_completed()
                self._repository.save(report)
                logger.info(
                    "CMA %s completed with no comparables (%d candidates passed filters)",
                    report.reference_number, search.total_found,
                )
                return CmaResult(
                    success=True,
                    report=report,
                    comparables=[],
                    error=NO_COMPARABLES_MESSAGE,
                )

            # Step 3: Statistics
            statistics = self._statistics.calculate(
                comparables, subject, report.suggested_price_currency,
            )

            # Step 4: Narrative
            narrative = self._insights.generate(report, subject, comparables, statistics)
            comparable_data = [c.to_dict() for c in comparables]

            # Step 5: Complete
            if narrative.success:
                report.mark_completed(
                    insights=narrative.insights.to_dict(),
                    statistics=statistics.to_dict(),
                    comparables=comparable_data,
                    suggested_price=narrative.suggested_price.to_dict(),
                    generation_request_id=narrative.request_id,
                )
                result = CmaResult(
                    success=True,
                    report=report,
                    comparables=comparables,
                    statistics=statistics,
                    insights=narrative.insights,
                )
            else:
                logger.warning(
                    "CMA %s completed without insights: %s",
                    report.reference_number, narrative.error,
                )
                report.mark_completed(
                    statistics=statistics.to_dict(),
                    comparables=comparable_data,
                )
                result = CmaResult(
                    success=False,
                    report=report,
                    comparables=comparables,
                    statistics=statistics,
                    error=narrative.error,
                )
            self._repository.save(report)

            # Step 6: Render
            if options.generate_pdf:
                self._enqueue_render(report)

            logger.info(
                "CMA %s completed: %d comparables, insights=%s",
                report.reference_number, len(comparables), narrative.success,
            )
            return result

        except (ConfigurationError, RateLimitError):
            report.reset_to_draft()
            self._repository.save(report)
            raise

        except Exception as e:
            logger.exception("CMA generation failed for report %s", report.reference_number)
            report.reset_to_draft()
            self._repository.save(report)
            return CmaResult(success=False, report=report, error=str(e))

    def _enqueue_render(self, report: Report) -> None:
        if self._renderer is None:
            logger.warning("No renderer configured, skipping PDF for %s", report.reference_number)
            return
        try:
            self._renderer.enqueue(report.id, report.website_id)
        except Exception:
            logger.exception("Could not enqueue PDF rendering for %s", report.reference_number)

    # =========================================================================
    # Report construction
    # =========================================================================

    def _create_report(
        self,
        subject: SubjectProperty,
        website: Website,
        user: Optional[User],
        options: CmaOptions,
    ) -> Report:
        report = Report(
            website_id=website.id,
            user_id=user.id if user else None,
            subject_property_id=subject.id,
            report_type=REPORT_TYPE_CMA,
            title=options.title or self._title(subject),
            city=subject.city or None,
            region=subject.region or None,
            postal_code=subject.postal_code or None,
            latitude=subject.latitude,
            longitude=subject.longitude,
            radius_km=options.radius_km,
            subject_details=self._subject_details(subject),
            branding=dict(options.branding) or self.default_branding(website, user),
            suggested_price_currency=self.determine_currency(subject, website),
        )
        return self._repository.create(report)

    @staticmethod
    def _title(subject: SubjectProperty) -> str:
        address = ", ".join(p for p in (subject.street, subject.city) if p)
        return f"CMA Report for {address or 'Subject Property'}"

    @staticmethod
    def determine_currency(subject: SubjectProperty, website: Website) -> str:
        if subject.listing is not None and subject.listing.currency:
            return subject.listing.currency
        return website.default_currency or "USD"

    @staticmethod
    def default_branding(website: Website, user: Optional[User]) -> dict[str, Any]:
        branding = {
            "company_name": website.display_name,
            "company_logo_url": website.logo_url,
            "agent_name": user.full_name if user else None,
            "agent_email": user.email if user else None,
            "agent_phone": website.agency_phone,
        }
        return {k: v for k, v in branding.items() if v}

    @staticmethod
    def _subject_details(subject: SubjectProperty) -> dict[str, Any]:
        def _compact(d: dict) -> dict:
            return {k: v for k, v in d.items() if v not in (None, "", {})}

        return _compact({
            "property_id": subject.id,
            "reference": subject.reference,
            "address": _compact({
                "street": subject.street,
                "city": subject.city,
                "region": subject.region,
                "postal_code": subject.postal_code,
                "country": subject.country,
            }),
            "characteristics": _compact({
                "property_type": subject.property_type,
                "bedrooms": subject.bedrooms,
                "bathrooms": subject.bathrooms,
                "constructed_area": subject.constructed_area,
                "plot_area": subject.plot_area,
                "year_built": subject.year_built,
                "garages": subject.garages,
            }),
            "coordinates": _compact({
                "latitude": subject.latitude,
                "longitude": subject.longitude,
            }),
        })
