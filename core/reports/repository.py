"""
Report Repository - In-Memory Storage for Market Reports

Provides storage and retrieval of reports, scoped by website.
Uses in-memory storage with optional JSON file persistence.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from core.reports.models import Report, ReportStatus

logger = logging.getLogger(__name__)


class ReportNotFoundError(KeyError):
    """No report with that id exists for the website."""


# =============================================================================
# Repository
# =============================================================================


class ReportRepository:
    """
    Repository for storing and retrieving market reports.

    Lookups are always scoped by website: a report id belonging to another
    website is reported as not found.
    """

    def __init__(self, persist_path: Optional[str] = None):
        """
        Initialise repository.

        Args:
            persist_path: Optional path to persist data to JSON file
        """
        self._reports: dict[str, Report] = {}
        self._persist_path = Path(persist_path) if persist_path else None
        self._lock = threading.RLock()

        if self._persist_path and self._persist_path.exists():
            self._load_from_file()

    def _save_to_file(self) -> None:
        """Persist data to file."""
        if not self._persist_path:
            return

        data = {
            "reports": {
                rid: report.to_dict(include_pdf=True)
                for rid, report in self._reports.items()
            },
            "saved_at": datetime.now(timezone.utc).isoformat(),
        }

        self._persist_path.parent.mkdir(parents=True, exist_ok=True)
        self._persist_path.write_text(json.dumps(data, indent=2))

    def _load_from_file(self) -> None:
        """Load data from file."""
        try:
            data = json.loads(self._persist_path.read_text())
            for rid, report_data in data.get("reports", {}).items():
                self._reports[rid] = Report.from_dict(report_data)
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning("Could not load report data from %s: %s", self._persist_path, e)

    # =========================================================================
    # CRUD Operations
    # =========================================================================

    def create(self, report: Report) -> Report:
        """
        Store a new report.

        Raises:
            ValueError: If a report with the same id already exists
        """
        with self._lock:
            if report.id in self._reports:
                raise ValueError(f"Report {report.id} already exists")
            self._reports[report.id] = report
            self._save_to_file()
        return report

    def get(self, website_id: str, report_id: str) -> Report:
        """
        Get a report of a website.

        Raises:
            ReportNotFoundError: If missing or owned by another website
        """
        report = self._reports.get(report_id)
        if report is None or report.website_id != website_id:
            raise ReportNotFoundError(report_id)
        return report

    def find(self, website_id: str, report_id: str) -> Optional[Report]:
        """Like get(), but returns None instead of raising."""
        try:
            return self.get(website_id, report_id)
        except ReportNotFoundError:
            return None

    def save(self, report: Report) -> Report:
        """Persist the current state of a report (insert or replace)."""
        with self._lock:
            self._reports[report.id] = report
            self._save_to_file()
        return report

    def delete(self, website_id: str, report_id: str) -> bool:
        """
        Delete a report.

        Returns:
            True if deleted, False if not found for that website
        """
        with self._lock:
            report = self._reports.get(report_id)
            if report is None or report.website_id != website_id:
                return False
            del self._reports[report_id]
            self._save_to_file()
            return True

    # =========================================================================
    # Query Operations
    # =========================================================================

    def list_for_website(
        self,
        website_id: str,
        report_type: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[Report]:
        """Reports of a website, most recent first."""
        reports = [
            r for r in self._reports.values()
            if r.website_id == website_id
            and (report_type is None or r.report_type == report_type)
        ]
        reports.sort(key=lambda r: r.created_at, reverse=True)
        if limit is not None:
            reports = reports[:limit]
        return reports

    def find_by_share_token(self, share_token: str) -> Optional[Report]:
        """Shared report for a public token, across all websites."""
        if not share_token:
            return None
        for report in self._reports.values():
            if report.share_token == share_token:
                return report
        return None

    def count(self) -> int:
        return len(self._reports)

    def count_by_status(self, website_id: str) -> dict[str, int]:
        counts: dict[str, int] = {s.value: 0 for s in ReportStatus}
        for report in self._reports.values():
            if report.website_id == website_id:
                counts[report.status.value] += 1
        return counts
