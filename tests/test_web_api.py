"""
Tests for the CMA web API

Exercises the FastAPI routes end to end with the mock narrative client
and inline PDF rendering:
- Generate / list / show / delete, scoped by website
- 404 for unknown properties and reports
- 422 for partial success, 429 for rate limits, 503 for configuration errors
- PDF download and share links
"""

import pytest
from pathlib import Path
import sys

from fastapi.testclient import TestClient

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.narrative import (
    CmaInsightsGenerator,
    RateLimitError,
    TextGenerationClient,
    TextGenerationResponse,
)
from core.cma import InMemoryInventory
from core.reports import CmaGenerator
from reporting import CmaPdfGenerator, PdfRenderQueue
from utils.config import Config
from web.app import create_app
from web.services import build_services


# =============================================================================
# Test Fixtures
# =============================================================================

def property_record(id, latitude=40.0, area=100.0, price=30_000_000):
    return {
        "id": id,
        "reference": f"REF-{id}",
        "street_address": f"Calle {id}",
        "city": "Madrid",
        "latitude": latitude,
        "longitude": -3.0,
        "prop_type_key": "apartment",
        "count_bedrooms": 3,
        "count_bathrooms": 2,
        "constructed_area": area,
        "year_construction": 2000,
        "for_sale": True,
        "price_sale_current_cents": price,
        "price_sale_current_currency": "EUR",
    }


class BrokenPdfGenerator(CmaPdfGenerator):
    def generate_to_buffer(self, report):
        raise RuntimeError("renderer crashed")


class StubClient(TextGenerationClient):
    provider = "stub"

    def __init__(self, content: str = "", error: Exception = None):
        self.content = content
        self.error = error

    def send(self, prompt, model_id=None):
        if self.error is not None:
            raise self.error
        return TextGenerationResponse(content=self.content)


@pytest.fixture
def inventory():
    inventory = InMemoryInventory()
    inventory.load_records("w1", [
        property_record("subject"),
        property_record("a", latitude=40.001, area=95.0, price=29_000_000),
        property_record("b", latitude=40.002, area=105.0, price=31_000_000),
        property_record("c", latitude=40.003, area=110.0, price=32_000_000),
    ])
    inventory.load_records("w2", [property_record("lonely")])
    return inventory


@pytest.fixture
def build_client(tmp_path, inventory):
    """Factory fixture: TestClient over freshly built services."""
    def _build(narrative_mode: str = "mock", text_client: TextGenerationClient = None):
        config = Config(
            data_dir=str(tmp_path),
            narrative_mode=narrative_mode,
            openai_api_key=None,
            default_currency="USD",
        )
        services = build_services(config, inventory=inventory, synchronous_render=True)
        if text_client is not None:
            services.generator = CmaGenerator(
                inventory=services.inventory,
                repository=services.repository,
                insights_generator=CmaInsightsGenerator(text_client, services.request_log),
                renderer=services.renderer,
            )
        return TestClient(create_app(services=services)), services
    return _build


@pytest.fixture
def client(build_client):
    return build_client()[0]


def create_cma(client, website_id="w1", **body):
    body.setdefault("property_id", "subject")
    return client.post(f"/api/websites/{website_id}/cmas", json=body)


# =============================================================================
# Health
# =============================================================================

class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["narrative_mode"] == "mock"


# =============================================================================
# Generation
# =============================================================================

class TestCreateCma:

    def test_create_success(self, client):
        response = create_cma(client, agent_name="Ana Garcia", user_id="u1")

        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["comparable_count"] == 3
        report = data["report"]
        assert report["status"] == "completed"
        assert report["reference_number"].startswith("CMA-")
        assert report["suggested_price"]["currency"] == "EUR"
        assert report["insights"]["confidence_level"] == "medium"
        assert report["pdf_ready"] is True
        assert len(report["comparables"]) == 3

    def test_no_comparables_message(self, client):
        response = create_cma(client, website_id="w2", property_id="lonely")

        assert response.status_code == 201
        data = response.json()
        assert data["comparable_count"] == 0
        assert data["message"] == "No comparable properties found within search criteria"
        assert data["report"]["status"] == "completed"

    def test_unknown_property(self, client):
        assert create_cma(client, property_id="missing").status_code == 404

    def test_property_of_other_website(self, client):
        assert create_cma(client, website_id="w2", property_id="subject").status_code == 404

    def test_invalid_options(self, client):
        assert create_cma(client, radius_km=0).status_code == 422
        assert create_cma(client, min_similarity_score=101).status_code == 422

    def test_partial_success_is_422(self, build_client):
        client, services = build_client(text_client=StubClient("no json"))

        response = create_cma(client)

        assert response.status_code == 422
        data = response.json()
        assert data["success"] is False
        assert data["error"] == "No valid JSON in response"
        assert data["report"]["status"] == "completed"

    def test_rate_limit_is_429(self, build_client):
        error = RateLimitError("slow down", provider="stub", retry_after=12)
        client, services = build_client(text_client=StubClient(error=error))

        response = create_cma(client)

        assert response.status_code == 429
        assert response.headers["retry-after"] == "12"
        assert response.json()["retry_after"] == 12
        assert services.repository.list_for_website("w1")[0].status.value == "draft"

    def test_missing_credentials_is_503(self, build_client):
        client, services = build_client(narrative_mode="live")

        response = create_cma(client)

        assert response.status_code == 503
        assert response.json()["provider"] == "openai"
        assert services.repository.list_for_website("w1")[0].status.value == "draft"


# =============================================================================
# Read / Delete
# =============================================================================

class TestReportAccess:

    def test_list_and_show(self, client):
        report_id = create_cma(client).json()["report"]["id"]

        listing = client.get("/api/websites/w1/cmas").json()
        assert [r["id"] for r in listing["reports"]] == [report_id]
        assert listing["counts"]["completed"] == 1

        shown = client.get(f"/api/websites/w1/cmas/{report_id}").json()
        assert shown["report"]["subject_property"]["property_id"] == "subject"

    def test_reports_scoped_by_website(self, client):
        report_id = create_cma(client).json()["report"]["id"]

        assert client.get(f"/api/websites/w2/cmas/{report_id}").status_code == 404
        assert client.get("/api/websites/w2/cmas").json()["reports"] == []

    def test_delete(self, client):
        report_id = create_cma(client).json()["report"]["id"]

        assert client.delete(f"/api/websites/w2/cmas/{report_id}").status_code == 404
        assert client.delete(f"/api/websites/w1/cmas/{report_id}").status_code == 200
        assert client.get(f"/api/websites/w1/cmas/{report_id}").status_code == 404


# =============================================================================
# PDF and Sharing
# =============================================================================

class TestPdfAndSharing:

    def test_download_pdf(self, client):
        report = create_cma(client).json()["report"]

        response = client.get(f"/api/websites/w1/cmas/{report['id']}/pdf")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert report["reference_number"] in response.headers["content-disposition"]
        assert response.content.startswith(b"%PDF")

    def test_pdf_rendered_on_demand(self, client):
        report_id = create_cma(client, generate_pdf=False).json()["report"]["id"]

        response = client.get(f"/api/websites/w1/cmas/{report_id}/pdf")

        assert response.status_code == 200
        assert response.content.startswith(b"%PDF")

    def test_on_demand_render_failure_is_404(self, build_client, caplog):
        client, services = build_client()
        services.renderer = PdfRenderQueue(
            services.repository, generator=BrokenPdfGenerator(), synchronous=True
        )
        report_id = create_cma(client, generate_pdf=False).json()["report"]["id"]

        response = client.get(f"/api/websites/w1/cmas/{report_id}/pdf")

        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "PDF not available"}
        assert "On-demand PDF rendering failed" in caplog.text

    def test_share_and_view(self, client):
        report_id = create_cma(client).json()["report"]["id"]

        shared = client.post(f"/api/websites/w1/cmas/{report_id}/share").json()
        assert shared["success"] is True
        assert shared["share_url"].endswith(f"/api/reports/shared/{shared['share_token']}")

        # Sharing again keeps the same token
        again = client.post(f"/api/websites/w1/cmas/{report_id}/share").json()
        assert again["share_token"] == shared["share_token"]

        view = client.get(f"/api/reports/shared/{shared['share_token']}").json()
        assert view["report"]["status"] == "shared"
        assert view["report"]["view_count"] == 1

    def test_unknown_share_token(self, client):
        assert client.get("/api/reports/shared/not-a-token").status_code == 404

    def test_draft_cannot_be_shared_or_downloaded(self, build_client):
        error = RateLimitError("slow down")
        client, services = build_client(text_client=StubClient(error=error))
        create_cma(client)
        draft_id = services.repository.list_for_website("w1")[0].id

        share = client.post(f"/api/websites/w1/cmas/{draft_id}/share")
        assert share.status_code == 422
        assert share.json()["error"] == "Report must be completed before sharing"
        assert client.get(f"/api/websites/w1/cmas/{draft_id}/pdf").status_code == 404
