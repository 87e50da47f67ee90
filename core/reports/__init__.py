"""
Market reports: entity, persistence and CMA orchestration.
"""

from .models import (
    Report,
    ReportStatus,
    ReportStateError,
    Website,
    User,
    REPORT_TYPE_CMA,
    generate_reference_number,
)
from .repository import ReportRepository, ReportNotFoundError
from .generator import (
    CmaGenerator,
    CmaOptions,
    CmaResult,
    ReportRenderer,
    NO_COMPARABLES_MESSAGE,
)

__all__ = [
    "Report",
    "ReportStatus",
    "ReportStateError",
    "Website",
    "User",
    "REPORT_TYPE_CMA",
    "generate_reference_number",
    "ReportRepository",
    "ReportNotFoundError",
    "CmaGenerator",
    "CmaOptions",
    "CmaResult",
    "ReportRenderer",
    "NO_COMPARABLES_MESSAGE",
]
