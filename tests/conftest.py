"""
Shared fixtures: a fresh SQLite store per test and document builders.
"""

import pytest

from invoice_memory.core.db import init_db
from invoice_memory.core.schema import (
    Document,
    FinalDecision,
    HumanCorrection,
    HumanFeedback,
    InvoiceFields,
    LineItem,
)


@pytest.fixture(autouse=True)
def temp_db(tmp_path, monkeypatch):
    """Point DB_PATH at a temporary database and create the schema."""
    db_path = tmp_path / "invoice_memory_test.db"
    monkeypatch.setenv("DB_PATH", str(db_path))
    monkeypatch.delenv("REQUIRED_FIELDS", raising=False)
    init_db()
    yield db_path


@pytest.fixture
def make_document():
    """Build a Document with sensible defaults; keyword arguments override fields."""
    def _make(document_id="INV-A-001", vendor="Supplier GmbH", raw_text="", line_items=(), **field_overrides):
        fields = {
            "invoice_number": "INV-2024-001",
            "invoice_date": "2024-01-20",
            "service_date": "2024-01-15",
            "currency": "EUR",
            "net_total": 2500.0,
            "tax_rate": 0.19,
            "tax_total": 475.0,
            "gross_total": 2975.0,
        }
        fields.update(field_overrides)
        return Document(
            document_id=document_id,
            vendor=vendor,
            fields=InvoiceFields(line_items=tuple(line_items), **fields),
            raw_text=raw_text,
            extraction_confidence=0.9,
        )
    return _make


@pytest.fixture
def make_feedback():
    """Build HumanFeedback from (field, from, to, reason) tuples."""
    def _make(document, corrections, approved=True):
        return HumanFeedback(
            document_id=document.document_id,
            vendor=document.vendor,
            corrections=tuple(HumanCorrection(*c) for c in corrections),
            final_decision=FinalDecision.APPROVED if approved else FinalDecision.REJECTED,
        )
    return _make


@pytest.fixture
def freight_item():
    return LineItem(qty=1, unit_price=1000.0, sku=None, description="Seefracht / Shipping")
