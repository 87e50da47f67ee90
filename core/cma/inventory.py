"""
Candidate inventory interface.

The comparables finder never queries storage itself; it is handed the
candidate pool for one website by an inventory implementation.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from .models import ComparableCandidate

logger = logging.getLogger(__name__)


class CandidateInventory(ABC):
    """Abstract source of comparable candidates, scoped by website."""

    @abstractmethod
    def candidates_for(self, website_id: str) -> List[ComparableCandidate]:
        """
        Return every listed property belonging to a website.

        Args:
            website_id: Tenant website identifier.

        Returns:
            Candidates (visibility is filtered later by the finder).
        """
        pass

    @abstractmethod
    def get_property(self, website_id: str, property_id: str) -> Optional[ComparableCandidate]:
        """
        Fetch one property of a website.

        Returns:
            The property, or None if it does not exist for that website.
        """
        pass


class InMemoryInventory(CandidateInventory):
    """
    Dictionary-backed inventory keyed by website.

    Optionally seeded from a JSON file of the shape
    {"<website_id>": [<raw property record>, ...]}.
    """

    def __init__(self):
        self._properties: Dict[str, Dict[str, ComparableCandidate]] = {}

    @classmethod
    def from_json_file(cls, path: str) -> "InMemoryInventory":
        """Load an inventory from disk; a missing file yields an empty inventory."""
        inventory = cls()
        file_path = Path(path)
        if not file_path.exists():
            logger.info("No inventory file at %s, starting empty", path)
            return inventory

        with open(file_path, "r") as f:
            data = json.load(f)

        for website_id, records in data.items():
            inventory.load_records(website_id, records)
        return inventory

    def add(self, website_id: str, candidate: ComparableCandidate) -> None:
        self._properties.setdefault(website_id, {})[candidate.id] = candidate

    def load_records(self, website_id: str, records: List[dict]) -> int:
        """
        Resolve raw records into candidates and add them.

        Returns:
            Number of records loaded.
        """
        for record in records:
            self.add(website_id, ComparableCandidate.from_record(record))
        logger.debug("Loaded %d properties for website %s", len(records), website_id)
        return len(records)

    def candidates_for(self, website_id: str) -> List[ComparableCandidate]:
        return list(self._properties.get(website_id, {}).values())

    def get_property(self, website_id: str, property_id: str) -> Optional[ComparableCandidate]:
        return self._properties.get(website_id, {}).get(str(property_id))
