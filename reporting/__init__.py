"""
Reporting module for the CMA engine.

Renders completed market reports as client-ready PDFs.

Usage:
    from reporting import CmaPdfGenerator

    pdf_bytes = CmaPdfGenerator().generate_to_buffer(report)

Background rendering:
    from reporting import PdfRenderQueue

    queue = PdfRenderQueue(repository)
    queue.enqueue(report.id, report.website_id)
"""

from .cma_pdf_generator import CmaPdfGenerator, PdfRenderQueue, Palette, get_cma_styles

__all__ = [
    "CmaPdfGenerator",
    "PdfRenderQueue",
    "Palette",
    "get_cma_styles",
]
