"""
HTTP API: processing, feedback, memory inspection and error mapping.
"""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from invoice_memory.api.main import app
from invoice_memory.core import correction_memory, vendor_memory
from invoice_memory.core.exceptions import ApplyFailure


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


def document_payload(**overrides):
    payload = {
        "document_id": "INV-A-001",
        "vendor": "Supplier GmbH",
        "raw_text": "Rechnung\nLeistungsdatum: 15.01.2024\nTotal 2975.00 EUR",
        "fields": {
            "invoice_number": "INV-2024-001",
            "invoice_date": "2024-01-20",
            "service_date": None,
            "currency": "EUR",
            "net_total": 2500.0,
            "tax_rate": 0.19,
            "tax_total": 475.0,
            "gross_total": 2975.0,
            "line_items": [{"sku": "WIDGET-001", "description": "Widget", "qty": 100, "unit_price": 25.0}],
        },
    }
    payload.update(overrides)
    return payload


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["db_health"] is True
    assert "vendor_memory" in data["memory_counts"]


def test_process_document(client):
    response = client.post("/documents/process", json=document_payload())

    assert response.status_code == 200
    data = response.json()
    assert data["decision"] == "ESCALATE"
    assert data["requires_human_review"] is True
    assert data["proposed_corrections"][0]["memory_ref"] == "missing_service_date"
    assert [entry["step"] for entry in data["audit_trail"]] == ["recall", "apply", "decide"]


def test_process_rejects_invalid_payload(client):
    response = client.post("/documents/process", json=document_payload(vendor="  "))
    assert response.status_code == 422


def test_feedback_then_memory_visible(client):
    feedback = {
        "document": document_payload(),
        "corrections": [{
            "field": "service_date",
            "from_value": None,
            "to_value": "2024-01-15",
            "reason": 'Printed as "Leistungsdatum: 15.01.2024"',
        }],
        "final_decision": "approved",
    }

    response = client.post("/documents/feedback", json=feedback)
    assert response.status_code == 200
    assert response.json()["skipped_duplicate"] is False
    assert response.json()["resolutions"] == 1

    mappings = client.get("/memory/vendor/Supplier GmbH").json()
    assert len(mappings) == 1
    assert mappings[0]["source_label"] == "Leistungsdatum"
    assert mappings[0]["confidence"] == pytest.approx(0.3)

    resolutions = client.get("/resolutions/INV-A-001").json()
    assert resolutions[0]["approved"] is True

    audit_steps = [entry["step"] for entry in client.get("/audit/INV-A-001").json()]
    assert audit_steps == ["learn"]

    repeat = client.post("/documents/feedback", json=feedback)
    assert repeat.json()["skipped_duplicate"] is True


def test_feedback_invalid_decision(client):
    response = client.post("/documents/feedback", json={
        "document": document_payload(), "corrections": [], "final_decision": "maybe",
    })
    assert response.status_code == 422


def test_corrections_include_global(client):
    correction_memory.seed(None, "SKONTO")
    correction_memory.seed("Parts AG", "VAT_INCLUDED")

    patterns = {row["pattern"]: row["vendor"] for row in client.get("/memory/corrections/Parts AG").json()}
    assert patterns == {"SKONTO": None, "VAT_INCLUDED": "Parts AG"}


def test_reject_memory(client):
    memory = vendor_memory.upsert_on_approval("Supplier GmbH", "Leistungsdatum", "service_date")

    response = client.post(f"/memory/vendor/{memory.id}/reject")
    assert response.status_code == 200
    assert response.json()["rejected_count"] == 1


def test_reject_unknown_memory(client):
    assert client.post("/memory/correction/999/reject").status_code == 404
    assert client.post("/memory/banana/1/reject").status_code == 400


def test_confidence_events(client):
    memory = vendor_memory.upsert_on_approval("Supplier GmbH", "Leistungsdatum", "service_date")
    vendor_memory.reinforce(memory.id)

    response = client.get(f"/memory/vendor/{memory.id}/events")

    assert response.status_code == 200
    events = response.json()
    assert [e["reason"] for e in events] == ["created", "reinforced"]
    assert events[1]["new_confidence"] == pytest.approx(0.35)
    assert events[0]["memory_kind"] == "VENDOR"


def test_confidence_events_unknown_memory(client):
    assert client.get("/memory/correction/999/events").status_code == 404
    assert client.get("/memory/banana/1/events").status_code == 400


def test_stage_failure_maps_to_500(client):
    with patch("invoice_memory.api.main.run_pipeline", side_effect=ApplyFailure("bad field", "INV-A-001")):
        response = client.post("/documents/process", json=document_payload())

    assert response.status_code == 500
    body = response.json()
    assert body["error_type"] == "ApplyFailure"
    assert body["details"]["stage"] == "apply"
    assert "Apply stage failed" in body["message"]
