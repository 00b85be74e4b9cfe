"""
Learn stage - writes a reviewer's decision back into memory.

Rejections are only logged. Approvals are learned in a single transaction:
resolutions, vendor mappings, correction patterns and the duplicate mark
either all land or none do, so a failed learn can simply be retried.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from util.logging import logger

from ..core import correction_memory, duplicate_guard, vendor_memory
from ..core.config import APPROVED_CONFIDENCE_DELTA, INITIAL_MEMORY_CONFIDENCE, REJECTED_CONFIDENCE_DELTA
from ..core.db import transaction
from ..core.exceptions import LearnFailure
from ..core.patterns import PATTERNS, PatternSpec, is_correction_field, is_label_mappable, labels_for
from ..core.resolution_log import record_resolution
from ..core.schema import (
    CorrectionMemory,
    Document,
    HumanCorrection,
    HumanFeedback,
    MemoryKind,
    ResolutionRecord,
    VendorMemory,
)
from ..core.text_matcher import contains_any

_QUOTED = re.compile(r"[\"“„]([^\"“”„]+)[\"”“]")


@dataclass
class LearnResult:
    document_id: str
    final_decision: str
    skipped_duplicate: bool = False
    resolutions: List[ResolutionRecord] = field(default_factory=list)
    vendor_memories: List[VendorMemory] = field(default_factory=list)
    correction_memories: List[CorrectionMemory] = field(default_factory=list)

    @property
    def memory_updates(self) -> List[str]:
        """Readable summary of every memory row this learn pass wrote."""
        updates = [
            f"VENDOR {m.memory_ref} confidence={m.confidence:.2f} reinforced={m.reinforced_count}"
            for m in self.vendor_memories
        ]
        updates.extend(
            f"CORRECTION {m.pattern} ({'global' if m.is_global else m.vendor}) confidence={m.confidence:.2f} "
            f"reinforced={m.reinforced_count}"
            for m in self.correction_memories
        )
        return updates

    def to_dict(self) -> Dict[str, Any]:
        return {
            "document_id": self.document_id,
            "final_decision": self.final_decision,
            "skipped_duplicate": self.skipped_duplicate,
            "resolutions": len(self.resolutions),
            "memory_updates": self.memory_updates,
        }


def candidate_labels(correction: HumanCorrection) -> List[str]:
    """Labels quoted in the reviewer's reason first, then the known labels for the field."""
    labels = []
    for quoted in _QUOTED.findall(correction.reason or ""):
        label = quoted.split(":", 1)[0].strip()
        if label and label not in labels:
            labels.append(label)
    for label in labels_for(correction.field):
        if label not in labels:
            labels.append(label)
    return labels


def infer_vendor_mapping(document: Document, correction: HumanCorrection) -> Optional[Tuple[str, str]]:
    """(source_label, target_field) when the corrected value sits behind a label printed on the document.

    Only fields whose value the label matcher can read back are mapped.
    """
    if not is_label_mappable(correction.field):
        return None

    raw = (document.raw_text or "").lower()
    for label in candidate_labels(correction):
        if label.lower() in raw:
            return label, correction.field
    return None


def infer_patterns(document: Document, feedback: HumanFeedback) -> List[PatternSpec]:
    """Patterns whose keywords appear in the text and whose fields the reviewer touched."""
    touched = [c.field for c in feedback.corrections]
    return [
        spec for spec in PATTERNS.values()
        if contains_any(document.raw_text, spec.learn_keywords)
        and any(spec.touches(field_path) for field_path in touched)
    ]


def memory_kind_for_field(field_path: str) -> MemoryKind:
    return MemoryKind.CORRECTION if is_correction_field(field_path) else MemoryKind.VENDOR


def learn(document: Document, feedback: HumanFeedback) -> LearnResult:
    """Record the reviewer's decision and, on approval, reinforce memory."""
    result = LearnResult(document_id=document.document_id, final_decision=feedback.final_decision.value)

    try:
        if not feedback.approved:
            _record_rejection(document, feedback, result)
        else:
            _learn_approval(document, feedback, result)
    except Exception as e:
        logger.log_stage_failure("learn", document.document_id, e)
        raise LearnFailure(str(e), document.document_id) from e

    logger.log_learn(document.document_id, result.final_decision, len(result.resolutions), result.memory_updates)
    return result


def _record_rejection(document: Document, feedback: HumanFeedback, result: LearnResult):
    with transaction() as tx:
        for correction in feedback.corrections:
            result.resolutions.append(record_resolution(ResolutionRecord(
                document_id=document.document_id,
                vendor=document.vendor,
                memory_kind=memory_kind_for_field(correction.field),
                memory_ref=correction.field,
                approved=False,
                confidence_delta=REJECTED_CONFIDENCE_DELTA,
                timestamp=datetime.now(),
            ), conn=tx))


def _learn_approval(document: Document, feedback: HumanFeedback, result: LearnResult):
    with transaction() as tx:
        if duplicate_guard.is_seen(document.vendor, document.document_number, conn=tx):
            result.skipped_duplicate = True
            logger.log_duplicate_blocked(document.vendor, document.document_number, "learn")
            return

        mappings = [infer_vendor_mapping(document, correction) for correction in feedback.corrections]
        patterns = infer_patterns(document, feedback)

        now = datetime.now()
        for correction, mapping in zip(feedback.corrections, mappings):
            kind, ref = _resolution_target(correction, mapping, patterns)
            result.resolutions.append(record_resolution(ResolutionRecord(
                document_id=document.document_id,
                vendor=document.vendor,
                memory_kind=kind,
                memory_ref=ref,
                approved=True,
                confidence_delta=APPROVED_CONFIDENCE_DELTA,
                timestamp=now,
            ), conn=tx))

        learned = []
        for mapping in mappings:
            if mapping is None or mapping in learned:
                continue
            learned.append(mapping)
            source_label, target_field = mapping
            result.vendor_memories.append(vendor_memory.upsert_on_approval(
                document.vendor, source_label, target_field,
                initial_confidence=INITIAL_MEMORY_CONFIDENCE, conn=tx
            ))

        for spec in patterns:
            result.correction_memories.append(_learn_pattern(document.vendor, spec, tx))

        duplicate_guard.mark_seen(document.vendor, document.document_number, document.document_id, conn=tx)


def _resolution_target(correction: HumanCorrection, mapping: Optional[Tuple[str, str]],
                       patterns: List[PatternSpec]) -> Tuple[MemoryKind, str]:
    if mapping is not None:
        return MemoryKind.VENDOR, f"{mapping[0]}->{mapping[1]}"
    for spec in patterns:
        if spec.touches(correction.field):
            return MemoryKind.CORRECTION, spec.name
    return memory_kind_for_field(correction.field), correction.field


def _learn_pattern(vendor: str, spec: PatternSpec, tx) -> CorrectionMemory:
    """Reinforce the vendor's row for the pattern, else the global row, else start a vendor row."""
    existing = correction_memory.find_by_pattern(vendor, spec.name, conn=tx)
    if existing is None:
        existing = correction_memory.find_by_pattern(None, spec.name, conn=tx)

    if existing is not None:
        return correction_memory.reinforce(existing.id, conn=tx)

    return correction_memory.upsert_on_approval(
        vendor, spec.name, spec.remediation,
        initial_confidence=INITIAL_MEMORY_CONFIDENCE, conn=tx
    )
