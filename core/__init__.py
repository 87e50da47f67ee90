"""
CMA Engine - Core Business Logic

This package provides the Comparative Market Analysis pipeline:
1. Comparable selection (cma: filter, score, adjust)
2. Market statistics (cma.statistics)
3. Narrative insights with audit trail (narrative)
4. Report lifecycle and orchestration (reports)
"""

from .cma import (
    ComparablesFinder,
    ComparablesResult,
    MarketStatistics,
    SearchOptions,
    StatisticsCalculator,
    SubjectProperty,
)
from .reports import CmaGenerator, CmaOptions, CmaResult, Report, ReportStatus

__all__ = [
    "ComparablesFinder",
    "ComparablesResult",
    "MarketStatistics",
    "SearchOptions",
    "StatisticsCalculator",
    "SubjectProperty",
    "CmaGenerator",
    "CmaOptions",
    "CmaResult",
    "Report",
    "ReportStatus",
]
