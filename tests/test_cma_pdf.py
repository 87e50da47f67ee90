"""
Tests for CMA PDF generation

Verifies:
- A completed report renders to a valid PDF
- Reports without insights or comparables still render
- The render queue attaches the PDF to the stored report
- Render failures are logged, never raised from enqueue
"""

import pytest
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.reports import Report, ReportRepository
from reporting import CmaPdfGenerator, PdfRenderQueue


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def completed_report():
    report = Report(
        website_id="w1",
        title="CMA Report for Calle Mayor 1, Madrid",
        city="Madrid",
        subject_details={
            "property_id": "p1",
            "address": {"street": "Calle Mayor 1", "city": "Madrid"},
            "characteristics": {
                "property_type": "apartment",
                "bedrooms": 3,
                "bathrooms": 2.0,
                "constructed_area": 100.0,
                "year_built": 2000,
            },
        },
        branding={"company_name": "Costa Homes & Co", "agent_name": "Ana <Garcia>"},
        suggested_price_currency="EUR",
    )
    report.mark_generating()
    report.mark_completed(
        insights={
            "executive_summary": "Priced in line with the market.",
            "market_position": "Average",
            "pricing_rationale": "Adjusted median of the comparables.",
            "strengths": ["Light", "Location"],
            "considerations": ["Older building"],
            "recommendation": "List at the midpoint.",
            "time_to_sell_estimate": "45 days",
            "confidence_level": "high",
        },
        statistics={
            "comparable_count": 2,
            "currency": "EUR",
            "average_price_cents": 29_500_000,
            "median_price_cents": 29_500_000,
            "adjusted_median_cents": 30_000_000,
            "price_per_area_cents": 295_000,
            "price_range": {"low_cents": 29_000_000, "high_cents": 30_000_000, "range_cents": 1_000_000},
            "average_similarity": 92.5,
        },
        comparables=[
            {
                "id": f"c{i}",
                "address": f"Street {i}, Madrid",
                "bedrooms": 3,
                "bathrooms": 2.0,
                "constructed_area": 100.0,
                "price_cents": 29_000_000 + i * 1_000_000,
                "currency": "EUR",
                "similarity_score": 95.0 - i * 5,
                "adjustments": {"bedrooms": {"difference": 1, "adjustment_cents": 1_500_000}},
                "adjusted_price_cents": 30_500_000 + i * 1_000_000,
                "distance_km": 0.4,
            }
            for i in range(2)
        ],
        suggested_price={"low_cents": 28_500_000, "high_cents": 31_500_000, "currency": "EUR"},
    )
    return report


@pytest.fixture
def bare_report():
    report = Report(website_id="w1", title="CMA Report for Subject Property")
    report.mark_generating()
    report.mark_completed()
    return report


class BrokenGenerator(CmaPdfGenerator):
    def generate_to_buffer(self, report):
        raise RuntimeError("renderer crashed")


class InterleavingGenerator(CmaPdfGenerator):
    """Renders another report while the first document is being assembled."""

    def __init__(self, other: Report):
        super().__init__()
        self.other = other
        self.footers = []

    def _build_footer_note(self, report):
        if self.other is not None and report is not self.other:
            other, self.other = self.other, None
            self.generate_to_buffer(other)
        return super()._build_footer_note(report)

    def _draw_page_frame(self, report, canvas_obj, doc):
        self.footers.append((doc.title, report.reference_number))
        super()._draw_page_frame(report, canvas_obj, doc)


# =============================================================================
# Generator Tests
# =============================================================================

class TestCmaPdfGenerator:

    def test_completed_report_renders(self, completed_report):
        data = CmaPdfGenerator().generate_to_buffer(completed_report)
        assert data.startswith(b"%PDF")
        assert len(data) > 1000

    def test_report_without_artifacts_renders(self, bare_report):
        data = CmaPdfGenerator().generate_to_buffer(bare_report)
        assert data.startswith(b"%PDF")

    def test_partial_report_renders(self, completed_report):
        completed_report.ai_insights = None
        completed_report.suggested_price_low_cents = None
        completed_report.suggested_price_high_cents = None
        data = CmaPdfGenerator().generate_to_buffer(completed_report)
        assert data.startswith(b"%PDF")

    def test_footer_reference_belongs_to_its_own_report(self, completed_report, bare_report):
        generator = InterleavingGenerator(other=bare_report)

        data = generator.generate_to_buffer(completed_report)

        assert data.startswith(b"%PDF")
        own = {ref for title, ref in generator.footers if title == completed_report.title}
        other = {ref for title, ref in generator.footers if title == bare_report.title}
        assert own == {completed_report.reference_number}
        assert other == {bare_report.reference_number}


# =============================================================================
# Render Queue Tests
# =============================================================================

class TestPdfRenderQueue:

    def test_synchronous_enqueue_attaches_pdf(self, completed_report):
        repository = ReportRepository()
        repository.create(completed_report)
        queue = PdfRenderQueue(repository, synchronous=True)

        assert queue.enqueue(completed_report.id, "w1") is None
        assert repository.get("w1", completed_report.id).pdf_ready

    def test_threaded_enqueue(self, completed_report):
        repository = ReportRepository()
        repository.create(completed_report)
        queue = PdfRenderQueue(repository)

        future = queue.enqueue(completed_report.id, "w1")
        future.result(timeout=30)
        queue.shutdown()

        assert completed_report.pdf_data.startswith(b"%PDF")

    def test_failure_is_logged_not_raised(self, completed_report, caplog):
        repository = ReportRepository()
        repository.create(completed_report)
        queue = PdfRenderQueue(repository, generator=BrokenGenerator(), synchronous=True)

        queue.enqueue(completed_report.id, "w1")

        assert not completed_report.pdf_ready
        assert "PDF rendering failed" in caplog.text

    def test_unknown_report_is_logged(self, caplog):
        queue = PdfRenderQueue(ReportRepository(), synchronous=True)
        queue.enqueue("missing", "w1")
        assert "PDF rendering failed" in caplog.text
