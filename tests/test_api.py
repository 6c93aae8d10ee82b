"""Tests for the HTTP API."""

import asyncio
import pytest
from fastapi.testclient import TestClient

from briefdesk import api
from briefdesk.store import InMemoryKeyValueStore


@pytest.fixture
def client():
    """Client whose sessions live in memory for the duration of one test."""
    sessions = api.build_sessions(InMemoryKeyValueStore())
    api.app.dependency_overrides[api.get_sessions] = lambda: sessions
    yield TestClient(api.app)
    api.app.dependency_overrides.clear()


class TestMeta:
    """Test root and health endpoints."""

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
        assert response.headers["X-Content-Type-Options"] == "nosniff"

    def test_unknown_variant(self, client):
        """Test that only ramp and earnings exist."""
        assert client.get("/api/quarterly/options").status_code == 404
        assert client.get("/api/quarterly/state").status_code == 404


class TestTemplates:
    """Test option and template lookup."""

    def test_ramp_options(self, client):
        data = client.get("/api/ramp/options").json()

        assert data["default_category"] == "Fintech"
        assert len(data["categories"]) == 7
        assert "Consumer/D2C" in data["categories"]
        assert data["tabs"] == ["Ramp Brief", "Signals", "Checklist"]
        assert "AGM / Transcript" in data["doc_types"]

    def test_earnings_options(self, client):
        data = client.get("/api/earnings/options").json()
        assert data["default_category"] == "Growth / Tech"
        assert len(data["categories"]) == 4

    def test_template_with_slash_in_name(self, client):
        """Test that a label containing '/' resolves."""
        data = client.get("/api/ramp/templates/Consumer/D2C").json()
        assert data["name"] == "Consumer/D2C"
        assert len(data["kpis"]) == 7

    def test_unknown_template_falls_back(self, client):
        """Test that lookups never fail."""
        data = client.get("/api/ramp/templates/Crypto").json()
        assert data["name"] == "Fintech"


class TestSignals:
    """Test ad-hoc signal detection."""

    def test_detect(self, client):
        response = client.post(
            "/api/ramp/signals",
            json={"text": "Gross margin improved due to pricing actions while guidance was revised upward."},
        )
        data = response.json()

        assert response.status_code == 200
        assert data["signals"] == ["guidance", "pricing", "margin"]
        assert data["labels"] == ["Guidance / outlook", "Pricing / discounting", "Margins / cost pressure"]
        assert len(data["implications"]) == 2

    def test_detect_empty(self, client):
        data = client.post("/api/earnings/signals", json={}).json()
        assert data["signals"] == []
        assert data["implications"] == ["Paste more of the release or transcript to surface signals."]


class TestState:
    """Test form state endpoints."""

    def test_defaults(self, client):
        data = client.get("/api/ramp/state").json()
        assert data["sector"] == "Fintech"
        assert data["key_numbers"]["revenue"] == ""

    def test_patch_persists(self, client):
        """Test a partial update then a read."""
        response = client.patch(
            "/api/ramp/state",
            json={"company": "Zomato", "sector": "Consumer/D2C", "key_numbers": {"revenue": "₹1,200 Cr"}},
        )
        assert response.status_code == 200

        data = client.get("/api/ramp/state").json()
        assert data["company"] == "Zomato"
        assert data["sector"] == "Consumer/D2C"
        assert data["key_numbers"]["revenue"] == "₹1,200 Cr"
        assert data["key_numbers"]["growth"] == ""

    def test_invalid_sector_rejected(self, client):
        response = client.patch("/api/ramp/state", json={"sector": "Crypto"})
        assert response.status_code == 422
        assert client.get("/api/ramp/state").json()["sector"] == "Fintech"

    def test_invalid_company_type_rejected(self, client):
        response = client.patch("/api/earnings/state", json={"company_type": "Fintech"})
        assert response.status_code == 422

    def test_malformed_body(self, client):
        response = client.patch(
            "/api/ramp/state",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 422

    def test_clear(self, client):
        client.patch("/api/earnings/state", json={"company": "First Bank", "notes": "NIM"})
        data = client.delete("/api/earnings/state").json()

        assert data["company"] == ""
        assert data["company_type"] == "Growth / Tech"


class TestSuggestions:
    """Test the suggestions endpoint."""

    def test_ramp_kpis(self, client):
        client.patch("/api/ramp/state", json={"sector": "SaaS", "excerpt": "Working capital and discount levels"})
        data = client.get("/api/ramp/suggestions").json()

        assert data["category"] == "SaaS"
        assert data["signals"] == ["pricing", "cash"]
        assert data["suggestions"][-2:] == [
            "Cash conversion / working capital trend",
            "Pricing / discounting intensity",
        ]

    def test_earnings_questions_first(self, client):
        client.patch("/api/earnings/state", json={"excerpt": "We revised our outlook"})
        data = client.get("/api/earnings/suggestions").json()

        assert data["signals"] == ["guidance"]
        assert data["suggestions"][0] == "What assumptions underpin the updated guidance?"


class TestExport:
    """Test brief export endpoints."""

    def test_download_markdown(self, client):
        client.patch("/api/ramp/state", json={"company": "Acme Pay", "ticker": "ACME"})
        response = client.get("/api/ramp/export", params={"kind": "md"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/markdown")
        assert 'filename="acme_pay_acme.md"' in response.headers["content-disposition"]
        assert response.text.startswith("# Acme Pay (ACME)")

    def test_download_text(self, client):
        response = client.get("/api/earnings/export", params={"kind": "txt"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "earnings_brief.txt" in response.headers["content-disposition"]
        assert response.text.startswith("Company \nType: Growth / Tech")

    def test_download_with_line_break_in_company(self, client):
        """Test that free text with control characters still exports."""
        client.patch("/api/ramp/state", json={"company": "Acme\nPay", "ticker": "AC\tME"})
        response = client.get("/api/ramp/export", params={"kind": "md"})
        disposition = response.headers["content-disposition"]

        assert response.status_code == 200
        assert 'filename="acme_pay_ac_me.md"' in disposition
        assert "\n" not in disposition and "\t" not in disposition
        assert response.text.startswith("# Acme\nPay (AC\tME)")

    def test_unknown_kind(self, client):
        assert client.get("/api/ramp/export", params={"kind": "pdf"}).status_code == 400

    def test_save_to_export_dir(self, client, tmp_path, monkeypatch):
        monkeypatch.setattr(api, "EXPORT_DIR", tmp_path)
        response = client.post("/api/ramp/export", params={"kind": "txt"})
        data = response.json()

        assert response.status_code == 200
        assert data["filename"] == "company_ramp.txt"
        assert (tmp_path / "company_ramp.txt").read_text(encoding="utf-8").startswith("Company \nSector: Fintech")


class TestSessionDependency:
    """Test the on-disk session dependency."""

    def test_concurrent_first_requests_share_sessions(self, tmp_path, monkeypatch):
        """Test that sessions are built once even when requests overlap."""
        monkeypatch.setattr(api, "STATE_DIR", tmp_path)
        monkeypatch.setattr(api, "_sessions", None)

        async def first_requests():
            return await asyncio.gather(*(api.get_sessions() for _ in range(5)))

        results = asyncio.run(first_requests())

        assert all(sessions is results[0] for sessions in results)
        assert set(results[0]) == {"ramp", "earnings"}
