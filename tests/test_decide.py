"""
Decision stage: duplicate escalation, auto-accept and the auto-apply gate.
"""

from invoice_memory.core.schema import (
    CorrectionMemory,
    CorrectionSource,
    DecisionOutcome,
    DuplicateMatch,
    MemoryContext,
    MemoryKind,
    ProposedCorrection,
    VendorMemory,
)
from invoice_memory.engine import decide


def proposal(field="service_date", confidence=0.8, kind=MemoryKind.VENDOR, memory_id=1):
    return ProposedCorrection(
        field=field, from_value=None, to_value="x", confidence=confidence,
        source=CorrectionSource.VENDOR_MEMORY if kind == MemoryKind.VENDOR else CorrectionSource.CORRECTION_MEMORY,
        reason="test", memory_kind=kind, memory_id=memory_id,
    )


def mapping(memory_id=1, reinforced=2):
    return VendorMemory(id=memory_id, vendor="Supplier GmbH", source_label="Leistungsdatum",
                        target_field="service_date", confidence=0.8, reinforced_count=reinforced)


def test_duplicate_escalates():
    context = MemoryContext(
        is_duplicate=True,
        duplicate_match=DuplicateMatch("Supplier GmbH", "INV-1", "doc-1", "seen"),
    )
    decision = decide("Supplier GmbH", "INV-1", [proposal(confidence=0.95)], context)

    assert decision.outcome == DecisionOutcome.ESCALATE
    assert decision.requires_human_review is True
    assert decision.confidence_score == 0.0
    assert "Duplicate" in decision.reasoning


def test_no_corrections_auto_accept():
    decision = decide("Supplier GmbH", "INV-1", [], MemoryContext())

    assert decision.outcome == DecisionOutcome.AUTO_ACCEPT
    assert decision.requires_human_review is False
    assert decision.confidence_score == 1.0


def test_auto_correct_when_gate_passes():
    context = MemoryContext(vendor_mappings=[mapping(reinforced=2)])
    decision = decide("Supplier GmbH", "INV-1", [proposal(confidence=0.8)], context)

    assert decision.outcome == DecisionOutcome.AUTO_CORRECT
    assert decision.requires_human_review is False
    assert decision.confidence_score == 0.8
    assert "service_date" in decision.reasoning


def test_escalate_when_reinforcement_too_low():
    context = MemoryContext(vendor_mappings=[mapping(reinforced=1)])
    decision = decide("Supplier GmbH", "INV-1", [proposal(confidence=0.9)], context)

    assert decision.outcome == DecisionOutcome.ESCALATE
    assert decision.confidence_score == 0.9
    assert "reinforced_count=1" in decision.reasoning


def test_heuristic_top_correction_has_no_reinforcement():
    heuristic = ProposedCorrection(field="currency", from_value=None, to_value="EUR", confidence=0.99,
                                   source=CorrectionSource.HEURISTIC, reason="test")
    decision = decide("Supplier GmbH", "INV-1", [heuristic], MemoryContext(vendor_mappings=[mapping()]))

    assert decision.outcome == DecisionOutcome.ESCALATE


def test_reinforcement_looked_up_by_kind_and_id():
    """Test a vendor and a correction row sharing an id are not confused."""
    correction = CorrectionMemory(id=1, vendor="Supplier GmbH", pattern="SKONTO", remediation="r",
                                  confidence=0.8, reinforced_count=0)
    context = MemoryContext(vendor_mappings=[mapping(memory_id=1, reinforced=5)], corrections=[correction])

    decision = decide("Supplier GmbH", "INV-1", [proposal(confidence=0.8, kind=MemoryKind.CORRECTION)], context)
    assert decision.outcome == DecisionOutcome.ESCALATE


def test_first_seen_wins_ties():
    strong = mapping(memory_id=1, reinforced=3)
    weak = mapping(memory_id=2, reinforced=0)
    context = MemoryContext(vendor_mappings=[strong, weak])

    first = decide("Supplier GmbH", "INV-1", [proposal(memory_id=1), proposal(memory_id=2)], context)
    second = decide("Supplier GmbH", "INV-1", [proposal(memory_id=2), proposal(memory_id=1)], context)

    assert first.outcome == DecisionOutcome.AUTO_CORRECT
    assert second.outcome == DecisionOutcome.ESCALATE
