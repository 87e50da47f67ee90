"""
Generation Request Audit Trail

Every narrative attempt leaves a GenerationRequest record, whether it
succeeded, failed or was re-raised to the caller.

Lifecycle:
    pending -> processing -> completed
                          -> failed
"""

from __future__ import annotations

import copy
import json
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


class GenerationStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class GenerationRequest:
    """One attempt at generating text for a website."""

    website_id: str
    request_type: str
    input_data: dict[str, Any] = field(default_factory=dict)
    user_id: Optional[str] = None
    locale: str = "en"
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: GenerationStatus = GenerationStatus.PENDING
    output: Optional[dict[str, Any]] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None

    def mark_processing(self) -> None:
        self.status = GenerationStatus.PROCESSING

    def mark_completed(
        self,
        output: dict[str, Any],
        input_tokens: Optional[int] = None,
        output_tokens: Optional[int] = None,
    ) -> None:
        self.status = GenerationStatus.COMPLETED
        self.output = output
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.completed_at = _utcnow()

    def mark_failed(self, message: str) -> None:
        self.status = GenerationStatus.FAILED
        self.error_message = message
        self.completed_at = _utcnow()

    @property
    def total_tokens(self) -> Optional[int]:
        if self.input_tokens is None and self.output_tokens is None:
            return None
        return (self.input_tokens or 0) + (self.output_tokens or 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "website_id": self.website_id,
            "user_id": self.user_id,
            "request_type": self.request_type,
            "locale": self.locale,
            "status": self.status.value,
            "input_data": self.input_data,
            "output": self.output,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GenerationRequest:
        completed_at = data.get("completed_at")
        return cls(
            id=data["id"],
            website_id=data["website_id"],
            user_id=data.get("user_id"),
            request_type=data["request_type"],
            locale=data.get("locale", "en"),
            status=GenerationStatus(data["status"]),
            input_data=data.get("input_data") or {},
            output=data.get("output"),
            input_tokens=data.get("input_tokens"),
            output_tokens=data.get("output_tokens"),
            error_message=data.get("error_message"),
            created_at=datetime.fromisoformat(data["created_at"]),
            completed_at=datetime.fromisoformat(completed_at) if completed_at else None,
        )


class GenerationRequestLog:
    """
    Append-only store of generation requests.

    Records are mutated in place through their mark_* methods, so callers
    must call save() after a transition when file persistence is enabled.
    """

    def __init__(self, storage_path: Optional[str] = None):
        self._requests: dict[str, GenerationRequest] = {}
        self._storage_path = storage_path
        self._lock = threading.Lock()

        if storage_path:
            self._load_from_file()

    def create(
        self,
        website_id: str,
        request_type: str,
        input_data: dict[str, Any],
        user_id: Optional[str] = None,
        locale: str = "en",
    ) -> GenerationRequest:
        request = GenerationRequest(
            website_id=website_id,
            request_type=request_type,
            input_data=copy.deepcopy(input_data),
            user_id=user_id,
            locale=locale,
        )
        with self._lock:
            self._requests[request.id] = request
            self._save_to_file()
        return request

    def save(self, request: GenerationRequest) -> None:
        with self._lock:
            self._requests[request.id] = request
            self._save_to_file()

    def get(self, request_id: str) -> Optional[GenerationRequest]:
        return self._requests.get(request_id)

    def list_for_website(self, website_id: str) -> list[GenerationRequest]:
        items = [r for r in self._requests.values() if r.website_id == website_id]
        return sorted(items, key=lambda r: r.created_at)

    def count(self) -> int:
        return len(self._requests)

    def _load_from_file(self) -> None:
        path = Path(self._storage_path)
        if not path.exists():
            return
        with open(path, "r") as f:
            data = json.load(f)
        for item in data.get("requests", []):
            request = GenerationRequest.from_dict(item)
            self._requests[request.id] = request
        logger.debug("Loaded %d generation requests from %s", len(self._requests), path)

    def _save_to_file(self) -> None:
        if not self._storage_path:
            return
        path = Path(self._storage_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump({"requests": [r.to_dict() for r in self._requests.values()]}, f, indent=2)
