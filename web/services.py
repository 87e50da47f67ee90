"""
Service wiring for the web layer.

Builds the inventory, repositories, narrative client and CMA generator
from Config. Route handlers reach them through app.state.services.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from core.cma import InMemoryInventory
from core.narrative import CmaInsightsGenerator, GenerationRequestLog, build_text_client
from core.reports import CmaGenerator, ReportRepository, Website
from reporting import PdfRenderQueue
from utils.config import Config

logger = logging.getLogger(__name__)


@dataclass
class CmaServices:
    """Everything a CMA request handler needs."""

    config: Config
    inventory: InMemoryInventory
    repository: ReportRepository
    request_log: GenerationRequestLog
    renderer: PdfRenderQueue
    generator: CmaGenerator
    websites: dict[str, Website] = field(default_factory=dict)

    def get_website(self, website_id: str) -> Website:
        """Registered website, or a bare one carrying the default currency."""
        website = self.websites.get(website_id)
        if website is None:
            website = Website(id=website_id, default_currency=self.config.default_currency)
        return website


def load_websites(path: str) -> dict[str, Website]:
    """Read {"<id>": {company_name, logo_url, ...}} from disk, if present."""
    file_path = Path(path)
    if not file_path.exists():
        return {}

    with open(file_path, "r") as f:
        data = json.load(f)

    return {
        website_id: Website(
            id=website_id,
            company_name=info.get("company_name"),
            logo_url=info.get("logo_url"),
            default_currency=info.get("default_currency"),
            agency_name=info.get("agency_name"),
            agency_phone=info.get("agency_phone"),
        )
        for website_id, info in data.items()
    }


def build_services(
    config: Optional[Config] = None,
    inventory: Optional[InMemoryInventory] = None,
    synchronous_render: bool = False,
) -> CmaServices:
    """
    Assemble the CMA services.

    Args:
        config: Configuration (loaded from environment when omitted)
        inventory: Pre-built inventory (loaded from DATA_DIR when omitted)
        synchronous_render: Render PDFs inline instead of on a worker thread
    """
    config = config or Config.load()

    if inventory is None:
        inventory = InMemoryInventory.from_json_file(
            os.path.join(config.data_dir, "inventory.json")
        )

    repository = ReportRepository(config.reports_path)
    request_log = GenerationRequestLog(os.path.join(config.data_dir, "generation_requests.json"))
    client = build_text_client(config)
    insights = CmaInsightsGenerator(client, request_log)
    renderer = PdfRenderQueue(repository, synchronous=synchronous_render)

    generator = CmaGenerator(
        inventory=inventory,
        repository=repository,
        insights_generator=insights,
        renderer=renderer,
    )

    logger.info("CMA services ready: %s", config.to_dict())

    return CmaServices(
        config=config,
        inventory=inventory,
        repository=repository,
        request_log=request_log,
        renderer=renderer,
        generator=generator,
        websites=load_websites(os.path.join(config.data_dir, "websites.json")),
    )
