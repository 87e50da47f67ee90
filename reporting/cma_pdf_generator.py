"""
Comparative Market Analysis - PDF Report

Generates client-ready PDF documents from completed CMA reports.
Uses ReportLab for deterministic PDF generation.

Output Structure:
1. Cover Page (branding, address, reference)
2. Executive Summary (with suggested price band)
3. Subject Property
4. Comparable Properties (with adjustments)
5. Market Analysis
6. Pricing Recommendation
"""

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from functools import partial
from io import BytesIO
from typing import List, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_JUSTIFY, TA_LEFT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from reportlab.platypus import (
    HRFlowable,
    PageBreak,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from core.reports.generator import ReportRenderer
from core.reports.models import Report
from core.reports.repository import ReportRepository
from utils.formatting import format_price, format_signed_price

logger = logging.getLogger(__name__)


# =============================================================================
# Color Palette
# =============================================================================

class Palette:
    """Print-friendly palette: charcoal text, blue accent."""
    CHARCOAL = colors.Color(0.12, 0.16, 0.23)
    SLATE = colors.Color(0.39, 0.45, 0.55)
    GRAY = colors.Color(0.5, 0.5, 0.5)
    BORDER = colors.Color(0.89, 0.91, 0.94)
    BACKGROUND = colors.Color(0.97, 0.98, 0.99)
    WHITE = colors.white

    ACCENT = colors.Color(0.15, 0.39, 0.92)
    SUCCESS = colors.Color(0.09, 0.64, 0.29)
    WARNING = colors.Color(0.85, 0.47, 0.02)


CONFIDENCE_COLORS = {
    "high": Palette.SUCCESS,
    "medium": Palette.WARNING,
    "low": Palette.SLATE,
}


# =============================================================================
# Style Configuration
# =============================================================================

def get_cma_styles() -> dict:
    """Paragraph styles for the CMA document."""
    styles = getSampleStyleSheet()

    styles.add(ParagraphStyle(
        name='CoverTitle',
        parent=styles['Normal'],
        fontSize=28,
        leading=34,
        textColor=Palette.ACCENT,
        alignment=TA_CENTER,
        fontName='Helvetica-Bold',
        spaceAfter=12*mm,
    ))

    styles.add(ParagraphStyle(
        name='CoverAddress',
        parent=styles['Normal'],
        fontSize=16,
        leading=20,
        textColor=Palette.CHARCOAL,
        alignment=TA_CENTER,
        fontName='Helvetica',
        spaceAfter=16*mm,
    ))

    styles.add(ParagraphStyle(
        name='CoverText',
        parent=styles['Normal'],
        fontSize=11,
        leading=15,
        textColor=Palette.SLATE,
        alignment=TA_CENTER,
        fontName='Helvetica',
    ))

    styles.add(ParagraphStyle(
        name='CoverStrong',
        parent=styles['CoverText'],
        textColor=Palette.CHARCOAL,
        fontName='Helvetica-Bold',
    ))

    styles.add(ParagraphStyle(
        name='SectionTitle',
        parent=styles['Normal'],
        fontSize=15,
        leading=19,
        textColor=Palette.ACCENT,
        fontName='Helvetica-Bold',
        spaceBefore=16,
        spaceAfter=6,
    ))

    styles.add(ParagraphStyle(
        name='SubsectionTitle',
        parent=styles['Normal'],
        fontSize=11,
        leading=14,
        textColor=Palette.CHARCOAL,
        fontName='Helvetica-Bold',
        spaceBefore=10,
        spaceAfter=6,
    ))

    styles['BodyText'].fontSize = 10
    styles['BodyText'].leading = 14.5
    styles['BodyText'].textColor = Palette.CHARCOAL
    styles['BodyText'].spaceAfter = 6
    styles['BodyText'].alignment = TA_JUSTIFY
    styles['BodyText'].fontName = 'Helvetica'

    styles.add(ParagraphStyle(
        name='BulletText',
        parent=styles['BodyText'],
        leftIndent=6*mm,
        bulletIndent=2*mm,
        spaceAfter=3,
        alignment=TA_LEFT,
    ))

    styles.add(ParagraphStyle(
        name='PriceBand',
        parent=styles['Normal'],
        fontSize=18,
        leading=22,
        textColor=Palette.ACCENT,
        alignment=TA_CENTER,
        fontName='Helvetica-Bold',
    ))

    styles.add(ParagraphStyle(
        name='MetricLabel',
        parent=styles['Normal'],
        fontSize=8,
        leading=10,
        textColor=Palette.SLATE,
        alignment=TA_CENTER,
        fontName='Helvetica',
    ))

    styles.add(ParagraphStyle(
        name='TableCell',
        parent=styles['Normal'],
        fontSize=8,
        leading=10,
        textColor=Palette.CHARCOAL,
        fontName='Helvetica',
    ))

    styles.add(ParagraphStyle(
        name='SmallText',
        parent=styles['Normal'],
        fontSize=8,
        leading=11,
        textColor=Palette.GRAY,
        fontName='Helvetica',
    ))

    return styles


def _text(value) -> str:
    """Escape free text for Paragraph markup."""
    return escape(str(value)) if value is not None else ""


# =============================================================================
# Generator
# =============================================================================

class CmaPdfGenerator:
    """
    Renders a completed report to PDF bytes.

    Usage:
        pdf_bytes = CmaPdfGenerator().generate_to_buffer(report)

    Sections whose data is absent (e.g. a report completed without
    insights) are rendered with a short placeholder instead of failing.
    """

    PAGE_WIDTH, PAGE_HEIGHT = A4
    MARGIN_LEFT = 18*mm
    MARGIN_RIGHT = 18*mm
    MARGIN_TOP = 18*mm
    MARGIN_BOTTOM = 20*mm

    def __init__(self):
        self.styles = get_cma_styles()

    def generate_to_buffer(self, report: Report) -> bytes:
        """Generate the PDF and return it as bytes."""
        buffer = BytesIO()
        self._build_document(report, buffer)
        return buffer.getvalue()

    def _build_document(self, report: Report, buffer: BytesIO):
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            leftMargin=self.MARGIN_LEFT,
            rightMargin=self.MARGIN_RIGHT,
            topMargin=self.MARGIN_TOP,
            bottomMargin=self.MARGIN_BOTTOM,
            title=report.title,
            author=report.agent_name or report.company_name or "",
            subject="Comparative Market Analysis",
        )

        story = []
        story.extend(self._build_cover_page(report))
        story.append(PageBreak())

        story.extend(self._build_executive_summary(report))
        story.extend(self._build_subject_property(report))
        story.extend(self._build_comparables_table(report))
        story.append(PageBreak())

        story.extend(self._build_market_analysis(report))
        story.extend(self._build_pricing_recommendation(report))
        story.extend(self._build_footer_note(report))

        doc.build(
            story,
            onFirstPage=self._draw_cover_page,
            onLaterPages=partial(self._draw_page_frame, report),
        )

    # =========================================================================
    # Page Drawing
    # =========================================================================

    def _draw_cover_page(self, canvas_obj: canvas.Canvas, doc):
        pass

    def _draw_page_frame(self, report: Report, canvas_obj: canvas.Canvas, doc):
        """Footer: reference number left, page number right."""
        canvas_obj.saveState()
        canvas_obj.setFont('Helvetica', 7)
        canvas_obj.setFillColor(Palette.GRAY)
        canvas_obj.drawString(
            self.MARGIN_LEFT,
            self.MARGIN_BOTTOM - 10*mm,
            report.reference_number,
        )
        canvas_obj.drawRightString(
            self.PAGE_WIDTH - self.MARGIN_RIGHT,
            self.MARGIN_BOTTOM - 10*mm,
            f"{doc.page}",
        )
        canvas_obj.restoreState()

    # =========================================================================
    # Section 1: Cover Page
    # =========================================================================

    def _build_cover_page(self, report: Report) -> list:
        elements = [Spacer(1, 45*mm)]
        elements.append(Paragraph("Comparative Market Analysis", self.styles['CoverTitle']))

        address = report.subject_details.get("address", {})
        address_line = ", ".join(
            p for p in (address.get("street"), address.get("city"), address.get("postal_code")) if p
        )
        if address_line:
            elements.append(Paragraph(_text(address_line), self.styles['CoverAddress']))

        elements.append(Paragraph("Prepared by:", self.styles['CoverText']))
        elements.append(Spacer(1, 2*mm))
        elements.append(Paragraph(
            _text(report.company_name or "Real Estate Professional"),
            self.styles['CoverStrong'],
        ))

        if report.agent_name:
            elements.append(Spacer(1, 3*mm))
            elements.append(Paragraph(_text(report.agent_name), self.styles['CoverText']))

        contact = " | ".join(
            p for p in (report.branding.get("agent_email"), report.branding.get("agent_phone")) if p
        )
        if contact:
            elements.append(Paragraph(_text(contact), self.styles['CoverText']))

        elements.append(Spacer(1, 16*mm))
        report_date = report.generated_at or report.created_at
        elements.append(Paragraph(
            f"Report Date: {report_date.strftime('%B %d, %Y')}", self.styles['CoverText'],
        ))
        elements.append(Paragraph(
            f"Reference: {_text(report.reference_number)}", self.styles['CoverText'],
        ))
        return elements

    # =========================================================================
    # Section 2: Executive Summary
    # =========================================================================

    def _build_executive_summary(self, report: Report) -> list:
        elements = [Paragraph("Executive Summary", self.styles['SectionTitle'])]

        summary = report.insights.get("executive_summary")
        if summary:
            elements.append(Paragraph(_text(summary), self.styles['BodyText']))
        else:
            elements.append(Paragraph(
                "Narrative analysis is not available for this report.", self.styles['SmallText'],
            ))

        price_range = report.suggested_price_range
        if price_range:
            band = Table(
                [
                    [Paragraph("Suggested List Price", self.styles['MetricLabel'])],
                    [Paragraph(
                        f"{price_range['formatted_low']} - {price_range['formatted_high']}",
                        self.styles['PriceBand'],
                    )],
                ],
                colWidths=[self.PAGE_WIDTH - self.MARGIN_LEFT - self.MARGIN_RIGHT],
            )
            band.setStyle(TableStyle([
                ('BACKGROUND', (0, 0), (-1, -1), Palette.BACKGROUND),
                ('BOX', (0, 0), (-1, -1), 0.5, Palette.BORDER),
                ('TOPPADDING', (0, 0), (-1, -1), 3*mm),
                ('BOTTOMPADDING', (0, 0), (-1, -1), 3*mm),
            ]))
            elements.append(Spacer(1, 6))
            elements.append(band)
        return elements

    # =========================================================================
    # Section 3: Subject Property
    # =========================================================================

    def _build_subject_property(self, report: Report) -> list:
        elements = [Paragraph("Subject Property", self.styles['SectionTitle'])]

        details = report.subject_details
        address = details.get("address", {})
        chars = details.get("characteristics", {})

        rows = [
            ("Address", ", ".join(
                p for p in (address.get("street"), address.get("city"), address.get("postal_code")) if p
            ) or "N/A"),
            ("Property Type", chars.get("property_type") or "N/A"),
            ("Bedrooms", chars.get("bedrooms", "N/A")),
            ("Bathrooms", chars.get("bathrooms", "N/A")),
            ("Size", f"{chars['constructed_area']} sqm" if chars.get("constructed_area") else "N/A"),
            ("Year Built", chars.get("year_built") or "N/A"),
            ("Garages", chars.get("garages", "N/A")),
        ]
        data = [
            [Paragraph(f"<b>{label}</b>", self.styles['TableCell']),
             Paragraph(_text(value), self.styles['TableCell'])]
            for label, value in rows
        ]
        table = Table(data, colWidths=[45*mm, 110*mm])
        table.setStyle(TableStyle([
            ('GRID', (0, 0), (-1, -1), 0.5, Palette.BORDER),
            ('BACKGROUND', (0, 0), (0, -1), Palette.BACKGROUND),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('TOPPADDING', (0, 0), (-1, -1), 2*mm),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 2*mm),
        ]))
        elements.append(table)
        return elements

    # =========================================================================
    # Section 4: Comparables
    # =========================================================================

    def _build_comparables_table(self, report: Report) -> list:
        elements = [Paragraph("Comparable Properties", self.styles['SectionTitle'])]
        comparables = report.comparable_properties or []
        currency = report.suggested_price_currency

        if not comparables:
            elements.append(Paragraph(
                "No comparable properties found within search criteria.", self.styles['BodyText'],
            ))
            return elements

        headers = ["Address", "Price", "Bed/Bath", "Size", "Match", "Adjustments", "Adjusted"]
        rows = [headers]
        for comp in comparables[:10]:
            adjustments = comp.get("adjustments") or {}
            adj_text = "<br/>".join(
                f"{_text(key.replace('_', ' ').capitalize())}: "
                f"{format_signed_price(adj['adjustment_cents'], currency)}"
                for key, adj in adjustments.items()
            ) or "None"
            rows.append([
                Paragraph(_text(comp.get("address") or ""), self.styles['TableCell']),
                format_price(comp.get("price_cents"), currency),
                f"{comp.get('bedrooms', '-')}/{comp.get('bathrooms', '-')}",
                f"{comp.get('constructed_area') or '-'}",
                f"{comp.get('similarity_score', 0)}%",
                Paragraph(adj_text, self.styles['TableCell']),
                format_price(comp.get("adjusted_price_cents"), currency),
            ])

        table = Table(rows, colWidths=[44*mm, 22*mm, 16*mm, 14*mm, 14*mm, 36*mm, 28*mm], repeatRows=1)
        table.setStyle(TableStyle([
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTNAME', (0, 1), (-1, -1), 'Helvetica'),
            ('FONTSIZE', (0, 0), (-1, -1), 8),
            ('BACKGROUND', (0, 0), (-1, 0), Palette.ACCENT),
            ('TEXTCOLOR', (0, 0), (-1, 0), Palette.WHITE),
            ('TEXTCOLOR', (0, 1), (-1, -1), Palette.CHARCOAL),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('GRID', (0, 0), (-1, -1), 0.5, Palette.BORDER),
            ('ROWBACKGROUNDS', (0, 1), (-1, -1), [Palette.WHITE, Palette.BACKGROUND]),
            ('TOPPADDING', (0, 0), (-1, -1), 2*mm),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 2*mm),
        ]))
        elements.append(table)
        return elements

    # =========================================================================
    # Section 5: Market Analysis
    # =========================================================================

    def _build_market_analysis(self, report: Report) -> list:
        elements = [Paragraph("Market Analysis", self.styles['SectionTitle'])]
        stats = report.statistics
        currency = report.suggested_price_currency

        price_range = stats.get("price_range") or {}
        metrics = [
            ("Average Price", format_price(stats.get("average_price_cents"), currency)),
            ("Median Price", format_price(stats.get("median_price_cents"), currency)),
            ("Price / sqm", format_price(stats.get("price_per_area_cents"), currency)),
            ("Comparables", str(stats.get("comparable_count", report.comparable_count))),
        ]
        metric_table = Table(
            [
                [Paragraph(value, self.styles['PriceBand']) for _, value in metrics],
                [Paragraph(label, self.styles['MetricLabel']) for label, _ in metrics],
            ],
            colWidths=[43*mm] * 4,
        )
        metric_table.setStyle(TableStyle([
            ('BOX', (0, 0), (-1, -1), 0.5, Palette.BORDER),
            ('BACKGROUND', (0, 0), (-1, -1), Palette.BACKGROUND),
            ('TOPPADDING', (0, 0), (-1, -1), 2*mm),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 2*mm),
        ]))
        elements.append(metric_table)

        if price_range:
            elements.append(Spacer(1, 6))
            elements.append(Paragraph(
                f"Price range: {format_price(price_range.get('low_cents'), currency)} - "
                f"{format_price(price_range.get('high_cents'), currency)}",
                self.styles['BodyText'],
            ))

        position = report.insights.get("market_position")
        if position:
            elements.append(Paragraph("Market Position", self.styles['SubsectionTitle']))
            elements.append(Paragraph(_text(position), self.styles['BodyText']))

        elements.extend(self._bullets("Strengths", report.insights.get("strengths")))
        elements.extend(self._bullets("Considerations", report.insights.get("considerations")))
        return elements

    def _bullets(self, title: str, items: Optional[List[str]]) -> list:
        if not items:
            return []
        elements = [Paragraph(title, self.styles['SubsectionTitle'])]
        for item in items:
            elements.append(Paragraph(f"• {_text(item)}", self.styles['BulletText']))
        return elements

    # =========================================================================
    # Section 6: Pricing Recommendation
    # =========================================================================

    def _build_pricing_recommendation(self, report: Report) -> list:
        insights = report.insights
        if not insights:
            return []

        elements = [Paragraph("Pricing Recommendation", self.styles['SectionTitle'])]

        if insights.get("pricing_rationale"):
            elements.append(Paragraph("Pricing Rationale", self.styles['SubsectionTitle']))
            elements.append(Paragraph(_text(insights["pricing_rationale"]), self.styles['BodyText']))

        if insights.get("recommendation"):
            elements.append(Paragraph("Recommendation", self.styles['SubsectionTitle']))
            elements.append(Paragraph(_text(insights["recommendation"]), self.styles['BodyText']))

        if insights.get("time_to_sell_estimate"):
            elements.append(Paragraph(
                f"<b>Estimated time to sell:</b> {_text(insights['time_to_sell_estimate'])}",
                self.styles['BodyText'],
            ))

        confidence = insights.get("confidence_level")
        if confidence:
            color = CONFIDENCE_COLORS.get(confidence, Palette.SLATE)
            elements.append(Paragraph(
                f"<b>Confidence:</b> <font color='#{color.hexval()[2:]}'>{_text(confidence.upper())}</font>",
                self.styles['BodyText'],
            ))
        return elements

    def _build_footer_note(self, report: Report) -> list:
        return [
            Spacer(1, 10),
            HRFlowable(width="100%", thickness=0.5, color=Palette.BORDER),
            Spacer(1, 4),
            Paragraph(
                "This comparative market analysis is an estimate based on comparable listings "
                "and is not an appraisal.",
                self.styles['SmallText'],
            ),
        ]


# =============================================================================
# Render Queue
# =============================================================================

class PdfRenderQueue(ReportRenderer):
    """
    Renders report PDFs off the request path.

    Jobs run on an executor (a single worker thread by default). With
    synchronous=True rendering happens inline, which tests rely on.
    Failures are logged and never propagate to the caller.
    """

    def __init__(
        self,
        repository: ReportRepository,
        generator: Optional[CmaPdfGenerator] = None,
        executor: Optional[Executor] = None,
        synchronous: bool = False,
    ):
        self._repository = repository
        self._generator = generator or CmaPdfGenerator()
        self._synchronous = synchronous
        self._executor = executor
        if executor is None and not synchronous:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pdf-render")

    def enqueue(self, report_id: str, website_id: str) -> Optional[Future]:
        if self._synchronous:
            self._render_logged(report_id, website_id)
            return None
        return self._executor.submit(self._render_logged, report_id, website_id)

    def render(self, report_id: str, website_id: str) -> bytes:
        """Render now, attach the bytes to the report and save it."""
        report = self._repository.get(website_id, report_id)
        data = self._generator.generate_to_buffer(report)
        report.attach_pdf(data)
        self._repository.save(report)
        logger.info("Rendered PDF for %s (%d bytes)", report.reference_number, len(data))
        return data

    def _render_logged(self, report_id: str, website_id: str) -> None:
        try:
            self.render(report_id, website_id)
        except Exception:
            logger.exception("PDF rendering failed for report %s", report_id)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
