"""
Recall stage - loads every memory that could matter for a document and ranks it.

Ranking never drops anything; Apply decides what is actually relevant.
"""

from typing import List

from util.logging import logger, sanitize_payload

from ..core import correction_memory, duplicate_guard, vendor_memory
from ..core.exceptions import RecallFailure
from ..core.patterns import keywords_for
from ..core.schema import CorrectionMemory, Document, DuplicateMatch, MemoryContext, VendorMemory
from ..core.text_matcher import count_keyword_hits

LABEL_HIT_SCORE = 0.7
MAPPING_CONFIDENCE_CAP = 0.3
KEYWORD_HIT_SCORE = 0.3
PATTERN_CONFIDENCE_CAP = 0.2
REINFORCEMENT_STEP = 0.05
REINFORCEMENT_CAP = 0.2


def score_vendor_mapping(mapping: VendorMemory, raw_text: str) -> float:
    score = 0.0
    if mapping.source_label.lower() in (raw_text or "").lower():
        score += LABEL_HIT_SCORE
    return score + min(mapping.confidence, MAPPING_CONFIDENCE_CAP)


def score_correction(memory: CorrectionMemory, raw_text: str) -> float:
    score = KEYWORD_HIT_SCORE * count_keyword_hits(raw_text, keywords_for(memory.pattern))
    score += min(memory.confidence, PATTERN_CONFIDENCE_CAP)
    score += min(REINFORCEMENT_STEP * memory.reinforced_count, REINFORCEMENT_CAP)
    return score


def recall(document: Document) -> MemoryContext:
    """Build the memory context for a document.

    A duplicate document still gets its memory loaded; the flag is what
    stops Decide and Learn from acting on it.
    """
    logger.debug(f"Recall for {document.document_id}: {sanitize_payload(document.raw_text)}")

    try:
        is_duplicate = duplicate_guard.is_seen(document.vendor, document.document_number)
        duplicate_match = None
        if is_duplicate:
            seen = duplicate_guard.find_seen(document.vendor, document.document_number)
            duplicate_match = DuplicateMatch(
                vendor=document.vendor,
                document_number=document.document_number,
                document_id=seen["document_id"] if seen else None,
                reason="Same vendor + document number already processed",
            )

        mappings: List[VendorMemory] = vendor_memory.find_candidates(document.vendor)
        corrections: List[CorrectionMemory] = correction_memory.find_candidates(document.vendor)
    except Exception as e:
        logger.log_stage_failure("recall", document.document_id, e)
        raise RecallFailure(str(e), document.document_id) from e

    for mapping in mappings:
        mapping.relevance = score_vendor_mapping(mapping, document.raw_text)
    for memory in corrections:
        memory.relevance = score_correction(memory, document.raw_text)

    # sorted() is stable, so equal scores keep repository order
    mappings = sorted(mappings, key=lambda m: m.relevance, reverse=True)
    corrections = sorted(corrections, key=lambda m: m.relevance, reverse=True)

    logger.log_recall(document.document_id, document.vendor, len(mappings), len(corrections), is_duplicate)
    if is_duplicate:
        logger.log_duplicate_blocked(document.vendor, document.document_number, "recall")

    return MemoryContext(
        vendor_mappings=mappings,
        corrections=corrections,
        is_duplicate=is_duplicate,
        duplicate_match=duplicate_match,
    )
