"""
Tests for the CMA Generator orchestration

Verifies:
- No comparables completes the report with an informational message
- Full success stores insights, statistics, comparables and price band
- Narrative failure still completes the report (partial success)
- Rate-limit / configuration errors roll back to draft and propagate
- Unexpected errors roll back to draft and return a failure result
- Renderer notified for usable reports; enqueue failures never escape
- Retry only from draft
"""

import pytest
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.cma import (
    ComparableCandidate,
    InMemoryInventory,
    Listing,
    ListingType,
    SubjectProperty,
)
from core.narrative import (
    CmaInsightsGenerator,
    ConfigurationError,
    GenerationRequestLog,
    MockTextClient,
    RateLimitError,
    TextGenerationClient,
    TextGenerationResponse,
)
from core.reports import (
    NO_COMPARABLES_MESSAGE,
    CmaGenerator,
    CmaOptions,
    ReportRenderer,
    ReportRepository,
    ReportStateError,
    ReportStatus,
    User,
    Website,
)


# =============================================================================
# Test Fixtures
# =============================================================================

class StubClient(TextGenerationClient):
    provider = "stub"

    def __init__(self, content: str = "", error: Exception = None):
        self.content = content
        self.error = error

    def send(self, prompt, model_id=None):
        if self.error is not None:
            raise self.error
        return TextGenerationResponse(content=self.content)


class RecordingRenderer(ReportRenderer):
    def __init__(self, fail: bool = False):
        self.calls = []
        self.fail = fail

    def enqueue(self, report_id, website_id):
        self.calls.append((report_id, website_id))
        if self.fail:
            raise RuntimeError("queue unavailable")


class BrokenInventory(InMemoryInventory):
    def candidates_for(self, website_id):
        raise RuntimeError("inventory offline")


WEBSITE = Website(id="w1", company_name="Costa Homes", default_currency="EUR", agency_phone="+34 600")
AGENT = User(id="u1", full_name="Ana Garcia", email="ana@example.com")


@pytest.fixture
def subject():
    return SubjectProperty(
        id="p1",
        reference="REF-1",
        street="Calle Mayor 1",
        city="Madrid",
        latitude=40.0,
        longitude=-3.0,
        property_type="apartment",
        bedrooms=3,
        bathrooms=2.0,
        constructed_area=100.0,
        year_built=2000,
        listing=Listing(ListingType.SALE, 30_000_000, "EUR"),
    )


@pytest.fixture
def inventory():
    inventory = InMemoryInventory()
    for i in range(4):
        inventory.add("w1", ComparableCandidate(
            id=f"c{i}",
            street=f"Street {i}",
            city="Madrid",
            latitude=40.0 + i * 0.001,
            longitude=-3.0,
            property_type="apartment",
            bedrooms=3,
            bathrooms=2.0,
            constructed_area=95.0 + i * 5,
            year_built=2000,
            listing=Listing(ListingType.SALE, 28_000_000 + i * 1_000_000, "EUR"),
        ))
    return inventory


@pytest.fixture
def repository():
    return ReportRepository()


@pytest.fixture
def renderer():
    return RecordingRenderer()


@pytest.fixture
def build_generator(inventory, repository, renderer):
    """Factory fixture wiring a generator around a text client."""
    def _build(client: TextGenerationClient = None, inventory_override=None, renderer_override=None):
        insights = CmaInsightsGenerator(client or MockTextClient(), GenerationRequestLog())
        return CmaGenerator(
            inventory=inventory_override or inventory,
            repository=repository,
            insights_generator=insights,
            renderer=renderer_override or renderer,
        )
    return _build


# =============================================================================
# Success Paths
# =============================================================================

class TestSuccess:

    def test_full_success(self, build_generator, subject, repository, renderer):
        result = build_generator().generate(subject, WEBSITE, AGENT)

        assert result.success
        assert result.error is None
        report = repository.get("w1", result.report.id)
        assert report.status == ReportStatus.COMPLETED
        assert report.comparable_count == 4
        assert report.market_statistics["comparable_count"] == 4
        assert report.ai_insights["confidence_level"] == "medium"
        assert report.suggested_price_low_cents > 0
        assert report.suggested_price_currency == "EUR"
        assert report.generation_request_id is not None
        assert renderer.calls == [(report.id, "w1")]

    def test_report_denormalised_fields(self, build_generator, subject):
        report = build_generator().generate(subject, WEBSITE, AGENT).report

        assert report.title == "CMA Report for Calle Mayor 1, Madrid"
        assert report.subject_property_id == "p1"
        assert report.user_id == "u1"
        assert report.city == "Madrid"
        assert report.radius_km == 2.0
        assert report.subject_details["characteristics"]["bedrooms"] == 3
        assert report.subject_details["address"] == {"street": "Calle Mayor 1", "city": "Madrid"}
        assert report.branding == {
            "company_name": "Costa Homes",
            "agent_name": "Ana Garcia",
            "agent_email": "ana@example.com",
            "agent_phone": "+34 600",
        }

    def test_custom_title_and_branding(self, build_generator, subject):
        options = CmaOptions(title="Spring valuation", branding={"company_name": "Other"})
        report = build_generator().generate(subject, WEBSITE, options=options).report

        assert report.title == "Spring valuation"
        assert report.branding == {"company_name": "Other"}

    def test_comparables_ranked(self, build_generator, subject):
        result = build_generator().generate(subject, WEBSITE)
        scores = [c["similarity_score"] for c in result.report.comparable_properties]
        assert scores == sorted(scores, reverse=True)

    def test_no_comparables_is_completed(self, build_generator, subject, repository, renderer):
        empty = InMemoryInventory()
        result = build_generator(inventory_override=empty).generate(subject, WEBSITE)

        assert result.success
        assert result.error == NO_COMPARABLES_MESSAGE
        assert result.comparables == []
        assert result.statistics is None
        report = repository.get("w1", result.report.id)
        assert report.status == ReportStatus.COMPLETED
        assert report.market_statistics is None
        assert renderer.calls == []

    def test_pdf_skipped_when_disabled(self, build_generator, subject, renderer):
        build_generator().generate(subject, WEBSITE, options=CmaOptions(generate_pdf=False))
        assert renderer.calls == []

    def test_currency_falls_back_to_website(self, build_generator):
        unlisted = SubjectProperty(
            id="p2", latitude=40.0, longitude=-3.0, property_type="apartment",
            bedrooms=3, constructed_area=100.0,
        )
        report = build_generator().generate(unlisted, WEBSITE).report
        assert report.suggested_price_currency == "EUR"


# =============================================================================
# Failure Paths
# =============================================================================

class TestFailures:

    def test_narrative_parse_failure_still_completes(
        self, build_generator, subject, repository, renderer,
    ):
        result = build_generator(StubClient("not json at all")).generate(subject, WEBSITE)

        assert not result.success
        assert result.error == "No valid JSON in response"
        assert result.statistics is not None
        report = repository.get("w1", result.report.id)
        assert report.status == ReportStatus.COMPLETED
        assert report.market_statistics is not None
        assert report.comparable_properties
        assert report.ai_insights is None
        assert report.suggested_price_range is None
        # Renderer still notified for a usable report
        assert renderer.calls == [(report.id, "w1")]

    def test_rate_limit_rolls_back_to_draft(self, build_generator, subject, repository):
        generator = build_generator(StubClient(error=RateLimitError("slow down", retry_after=5)))

        with pytest.raises(RateLimitError):
            generator.generate(subject, WEBSITE)

        reports = repository.list_for_website("w1")
        assert len(reports) == 1
        assert reports[0].status == ReportStatus.DRAFT

    def test_configuration_error_rolls_back_to_draft(self, build_generator, subject, repository):
        generator = build_generator(StubClient(error=ConfigurationError("no key")))

        with pytest.raises(ConfigurationError):
            generator.generate(subject, WEBSITE)
        assert repository.list_for_website("w1")[0].status == ReportStatus.DRAFT

    def test_unexpected_error_returns_failure(self, build_generator, subject, repository):
        generator = build_generator(inventory_override=BrokenInventory())

        result = generator.generate(subject, WEBSITE)

        assert not result.success
        assert result.error == "inventory offline"
        assert repository.get("w1", result.report.id).status == ReportStatus.DRAFT

    def test_enqueue_failure_is_swallowed(self, build_generator, subject):
        failing = RecordingRenderer(fail=True)
        result = build_generator(renderer_override=failing).generate(subject, WEBSITE)

        assert result.success
        assert len(failing.calls) == 1

    def test_no_renderer_configured(self, inventory, repository, subject):
        generator = CmaGenerator(
            inventory=inventory,
            repository=repository,
            insights_generator=CmaInsightsGenerator(MockTextClient()),
        )
        assert generator.generate(subject, WEBSITE).success


# =============================================================================
# Retry
# =============================================================================

class TestRetry:

    def test_retry_after_rate_limit(self, build_generator, subject, repository):
        with pytest.raises(RateLimitError):
            build_generator(StubClient(error=RateLimitError("slow down"))).generate(subject, WEBSITE)
        draft = repository.list_for_website("w1")[0]

        result = build_generator().retry(draft, subject, WEBSITE)

        assert result.success
        assert result.report.id == draft.id
        assert repository.count() == 1
        assert repository.get("w1", draft.id).status == ReportStatus.COMPLETED

    def test_retry_completed_report_rejected(self, build_generator, subject, repository):
        report = build_generator().generate(subject, WEBSITE).report

        with pytest.raises(ReportStateError):
            build_generator().retry(report, subject, WEBSITE)
        assert repository.get("w1", report.id).status == ReportStatus.COMPLETED
