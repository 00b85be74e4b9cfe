"""
Pipeline runner - Recall, Apply and Decide for one document, plus the audit trail.

Learn is not part of a run; it happens later through submit_feedback() once
a reviewer has looked at the result.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List

from util.logging import logger

from ..core import correction_memory, vendor_memory
from ..core.audit import audit_to_dict, record_audit
from ..core.schema import (
    AuditEntry,
    Decision,
    DecisionOutcome,
    Document,
    HumanFeedback,
    InvoiceFields,
    MemoryContext,
    MemoryKind,
    ProposedCorrection,
    with_field,
)
from .apply import apply
from .decide import decide, passes_gate
from .learn import LearnResult, learn
from .recall import recall


@dataclass
class PipelineResult:
    document_id: str
    normalized_fields: Dict[str, Any]
    proposed_corrections: List[ProposedCorrection]
    decision: Decision
    memory_updates: List[str] = field(default_factory=list)
    audit_trail: List[AuditEntry] = field(default_factory=list)
    context: MemoryContext = None

    @property
    def requires_human_review(self) -> bool:
        return self.decision.requires_human_review

    @property
    def confidence_score(self) -> float:
        return self.decision.confidence_score

    @property
    def reasoning(self) -> str:
        return self.decision.reasoning

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_id": self.document_id,
            "normalized_fields": self.normalized_fields,
            "proposed_corrections": [c.to_dict() for c in self.proposed_corrections],
            "decision": self.decision.outcome.value,
            "requires_human_review": self.requires_human_review,
            "confidence_score": self.confidence_score,
            "reasoning": self.reasoning,
            "memory_updates": self.memory_updates,
            "audit_trail": [audit_to_dict(entry) for entry in self.audit_trail],
        }


def fields_to_dict(fields: InvoiceFields) -> Dict[str, Any]:
    data = asdict(fields)
    data["line_items"] = list(data["line_items"])
    return data


def best_per_field(corrections: List[ProposedCorrection]) -> Dict[str, ProposedCorrection]:
    """Strongest non-placeholder proposal for each field, first-seen on ties."""
    best: Dict[str, ProposedCorrection] = {}
    for correction in corrections:
        if correction.placeholder:
            continue
        current = best.get(correction.field)
        if current is None or correction.confidence > current.confidence:
            best[correction.field] = correction
    return best


def _audit(trail: List[AuditEntry], document_id: str, step: str, details: str, **meta):
    trail.append(AuditEntry(
        document_id=document_id,
        step=step,
        timestamp=datetime.now(),
        details=details,
        meta=meta,
    ))


def _record_usage(correction: ProposedCorrection) -> str:
    if correction.memory_kind == MemoryKind.VENDOR:
        memory = vendor_memory.record_usage(correction.memory_id)
    else:
        memory = correction_memory.record_usage(correction.memory_id)
    return f"{correction.memory_kind.value} {correction.memory_ref} used (usage_count={memory.usage_count})"


def run_pipeline(document: Document, persist_audit: bool = True) -> PipelineResult:
    """Run Recall, Apply and Decide.

    On AUTO_CORRECT only proposals that clear the auto-apply gate themselves
    are written into a copy of the fields; the rest stay proposals.
    """
    trail: List[AuditEntry] = []

    context = recall(document)
    _audit(
        trail, document.document_id, "recall",
        f"Recalled {len(context.vendor_mappings)} vendor mappings and "
        f"{len(context.corrections)} correction patterns.",
        is_duplicate=context.is_duplicate,
    )

    corrections = apply(document, context)
    _audit(
        trail, document.document_id, "apply",
        f"Proposed {len(corrections)} corrections.",
        fields=[c.field for c in corrections],
    )

    decision = decide(document.vendor, document.document_number, corrections, context)
    _audit(
        trail, document.document_id, "decide", decision.reasoning,
        outcome=decision.outcome.value,
        confidence=decision.confidence_score,
    )

    normalized = document.fields
    memory_updates: List[str] = []
    if decision.outcome == DecisionOutcome.AUTO_CORRECT:
        applied = set()
        gated = [c for c in corrections if passes_gate(c, context)]
        for field_path, correction in best_per_field(gated).items():
            normalized = with_field(normalized, field_path, correction.to_value)
            if correction.memory_id is not None and correction.memory_kind is not None:
                key = (correction.memory_kind, correction.memory_id)
                if key not in applied:
                    applied.add(key)
                    memory_updates.append(_record_usage(correction))

    if persist_audit:
        for entry in trail:
            record_audit(entry)

    logger.log_operation("pipeline", decision.outcome.value.lower(), {
        "document_id": document.document_id,
        "corrections": len(corrections),
        "memory_updates": len(memory_updates),
    })

    return PipelineResult(
        document_id=document.document_id,
        normalized_fields=fields_to_dict(normalized),
        proposed_corrections=corrections,
        decision=decision,
        memory_updates=memory_updates,
        audit_trail=trail,
        context=context,
    )


def submit_feedback(document: Document, feedback: HumanFeedback, persist_audit: bool = True) -> LearnResult:
    """Learn from a reviewer's decision and audit it."""
    result = learn(document, feedback)

    if result.skipped_duplicate:
        details = "Duplicate document; learning skipped."
    else:
        details = f"Recorded {len(result.resolutions)} resolutions ({result.final_decision})."

    entry = AuditEntry(
        document_id=document.document_id,
        step="learn",
        timestamp=datetime.now(),
        details=details,
        meta={"memory_updates": result.memory_updates},
    )
    if persist_audit:
        record_audit(entry)

    return result
