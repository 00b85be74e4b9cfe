"""
Decision stage - classifies a document as AUTO_ACCEPT, AUTO_CORRECT or ESCALATE.

Pure function of its inputs. Duplicates always escalate; otherwise the
strongest proposal has to clear the auto-apply gate.
"""

from typing import List

from util.logging import logger

from ..core.confidence import should_auto_apply
from ..core.schema import Decision, DecisionOutcome, MemoryContext, MemoryKind, ProposedCorrection


def top_correction(corrections: List[ProposedCorrection]) -> ProposedCorrection:
    """Highest confidence; the earliest proposal wins a tie."""
    best = corrections[0]
    for correction in corrections[1:]:
        if correction.confidence > best.confidence:
            best = correction
    return best


def reinforced_count_for(correction: ProposedCorrection, context: MemoryContext) -> int:
    """Reinforcement count of the memory backing a proposal; 0 for heuristics."""
    if correction.memory_id is None:
        return 0

    if correction.memory_kind == MemoryKind.VENDOR:
        candidates = context.vendor_mappings
    elif correction.memory_kind == MemoryKind.CORRECTION:
        candidates = context.corrections
    else:
        return 0

    for memory in candidates:
        if memory.id == correction.memory_id:
            return memory.reinforced_count
    return 0


def passes_gate(correction: ProposedCorrection, context: MemoryContext) -> bool:
    """True if this one proposal may be applied without review."""
    return should_auto_apply(correction.confidence, reinforced_count_for(correction, context))


def decide(vendor: str, document_number: str, corrections: List[ProposedCorrection],
           context: MemoryContext) -> Decision:
    if context.is_duplicate:
        decision = Decision(
            outcome=DecisionOutcome.ESCALATE,
            requires_human_review=True,
            confidence_score=0.0,
            reasoning=(
                f"Duplicate document detected ({vendor} / {document_number}). "
                "Escalating to prevent contradictory memory."
            ),
        )
    elif not corrections:
        decision = Decision(
            outcome=DecisionOutcome.AUTO_ACCEPT,
            requires_human_review=False,
            confidence_score=1.0,
            reasoning="No proposed corrections. Document accepted as extracted.",
        )
    else:
        top = top_correction(corrections)
        reinforced = reinforced_count_for(top, context)

        if should_auto_apply(top.confidence, reinforced):
            fields = ", ".join(c.field for c in corrections if passes_gate(c, context))
            decision = Decision(
                outcome=DecisionOutcome.AUTO_CORRECT,
                requires_human_review=False,
                confidence_score=top.confidence,
                reasoning=(
                    f"Auto-correct allowed: confidence={top.confidence:.2f}, "
                    f"reinforced_count={reinforced}. Applying fields: {fields}."
                ),
            )
        else:
            decision = Decision(
                outcome=DecisionOutcome.ESCALATE,
                requires_human_review=True,
                confidence_score=top.confidence,
                reasoning=(
                    f"Escalated: confidence={top.confidence:.2f}, reinforced_count={reinforced}. "
                    "Low/insufficient reinforcement so memory will not be auto-applied."
                ),
            )

    logger.log_decision(document_number, decision.outcome.value, decision.confidence_score,
                        decision.requires_human_review)
    return decision
