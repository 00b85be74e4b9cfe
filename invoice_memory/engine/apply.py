"""
Apply stage - turns recalled memory into proposed corrections.

Proposes only. The document is never modified and nothing is decided here.
Order is fixed: required-field checks, currency recovery, vendor mappings,
then correction patterns.
"""

from typing import Any, List, Optional

from util.logging import logger

from ..core.config import (
    CURRENCY_RECOVERY_CONFIDENCE,
    DEFAULT_DISCOUNT_TERMS,
    DEFAULT_TAX_RATE,
    FREIGHT_SKU_CODE,
    REQUIRED_FIELD_PLACEHOLDER,
    get_required_fields,
)
from ..core.confidence import apply_decay
from ..core.exceptions import ApplyFailure
from ..core.patterns import (
    FREIGHT_SKU,
    SKONTO,
    VAT_INCLUDED,
    keywords_for,
    suggested_action_for,
    target_fields_for,
)
from ..core.schema import (
    CorrectionMemory,
    CorrectionSource,
    Document,
    MemoryContext,
    MemoryKind,
    ProposedCorrection,
    VendorMemory,
    resolve_field,
)
from ..core.text_matcher import LabelValueMatcher, contains_any, extract_discount_terms, find_currency_code

NUMERIC_FIELDS = ("net_total", "tax_rate", "tax_total", "gross_total")


def is_mapping_relevant(mapping: VendorMemory, raw_text: str) -> bool:
    """A mapping matters only when its label is printed on the document."""
    return LabelValueMatcher(mapping.source_label).is_present(raw_text)


def is_correction_relevant(memory: CorrectionMemory, raw_text: str) -> bool:
    return contains_any(raw_text, keywords_for(memory.pattern))


def apply(document: Document, context: MemoryContext) -> List[ProposedCorrection]:
    """Propose corrections for a document from its memory context."""
    try:
        corrections: List[ProposedCorrection] = []
        corrections.extend(_required_field_checks(document, context))
        corrections.extend(_recover_currency(document))

        for mapping in context.vendor_mappings:
            if is_mapping_relevant(mapping, document.raw_text):
                correction = _apply_vendor_mapping(document, mapping)
                if correction is not None:
                    corrections.append(correction)

        for memory in context.corrections:
            if is_correction_relevant(memory, document.raw_text):
                corrections.extend(_apply_correction_pattern(document, memory))
    except Exception as e:
        logger.log_stage_failure("apply", document.document_id, e)
        raise ApplyFailure(str(e), document.document_id) from e

    logger.log_corrections_proposed(document.document_id, corrections)
    return corrections


def _required_field_checks(document: Document, context: MemoryContext) -> List[ProposedCorrection]:
    proposals = []
    for field_path in get_required_fields():
        if resolve_field(document.fields, field_path) is not None:
            continue

        covered = any(
            mapping.target_field == field_path and is_mapping_relevant(mapping, document.raw_text)
            for mapping in context.vendor_mappings
        )
        if covered:
            continue

        proposals.append(ProposedCorrection(
            field=field_path,
            from_value=None,
            to_value=REQUIRED_FIELD_PLACEHOLDER,
            confidence=0.0,
            source=CorrectionSource.HEURISTIC,
            reason=f"Critical field '{field_path}' is missing and no relevant vendor memory is available.",
            vendor=document.vendor,
            memory_ref=f"missing_{field_path}",
            placeholder=True,
        ))
    return proposals


def _recover_currency(document: Document) -> List[ProposedCorrection]:
    if document.fields.currency is not None:
        return []

    recovered = find_currency_code(document.raw_text)
    if recovered is None:
        return []

    return [ProposedCorrection(
        field="currency",
        from_value=None,
        to_value=recovered,
        confidence=CURRENCY_RECOVERY_CONFIDENCE,
        source=CorrectionSource.HEURISTIC,
        reason=f"Currency '{recovered}' recovered from raw text.",
        vendor=document.vendor,
        memory_ref="currency_from_text",
    )]


def _apply_vendor_mapping(document: Document, mapping: VendorMemory) -> Optional[ProposedCorrection]:
    extracted = LabelValueMatcher(mapping.source_label).extract(document.raw_text)
    if extracted is None:
        return None

    current = resolve_field(document.fields, mapping.target_field)
    suggested = _coerce(mapping.target_field, extracted)
    if suggested is None:
        return None
    if current is not None and _same_value(current, suggested):
        return None

    confidence = apply_decay(mapping.confidence, mapping.last_used_at)
    return ProposedCorrection(
        field=mapping.target_field,
        from_value=current,
        to_value=suggested,
        confidence=confidence,
        source=CorrectionSource.VENDOR_MEMORY,
        reason=(
            f'Vendor "{mapping.vendor}" mapping "{mapping.source_label}" -> "{mapping.target_field}" applied. '
            f"(confidence: {confidence:.2f}, reinforced {mapping.reinforced_count}x, used {mapping.usage_count}x)"
        ),
        vendor=document.vendor,
        memory_kind=MemoryKind.VENDOR,
        memory_id=mapping.id,
        memory_ref=mapping.memory_ref,
    )


def _coerce(field_path: str, value: str) -> Any:
    """Numeric targets get a float, or None when the token does not parse."""
    if field_path in NUMERIC_FIELDS:
        try:
            return float(value)
        except ValueError:
            return None
    return value


def _same_value(current: Any, suggested: Any) -> bool:
    if isinstance(current, (int, float)) and isinstance(suggested, (int, float)):
        return abs(float(current) - float(suggested)) < 1e-9
    return current == suggested


def _apply_correction_pattern(document: Document, memory: CorrectionMemory) -> List[ProposedCorrection]:
    confidence = apply_decay(memory.confidence, memory.last_used_at)

    if memory.pattern == VAT_INCLUDED:
        proposals = _vat_included(document, memory, confidence)
        if proposals is not None:
            return proposals
    elif memory.pattern == FREIGHT_SKU:
        return _freight_sku(document, memory, confidence)
    elif memory.pattern == SKONTO:
        return _skonto(document, memory, confidence)

    return _generic(document, memory, confidence)


def _pattern_correction(document: Document, memory: CorrectionMemory, confidence: float,
                        field_path: str, to_value: Any, reason: str, placeholder: bool = False) -> ProposedCorrection:
    return ProposedCorrection(
        field=field_path,
        from_value=resolve_field(document.fields, field_path),
        to_value=to_value,
        confidence=confidence,
        source=CorrectionSource.CORRECTION_MEMORY,
        reason=reason,
        vendor=document.vendor,
        memory_kind=MemoryKind.CORRECTION,
        memory_id=memory.id,
        memory_ref=memory.memory_ref,
        placeholder=placeholder,
    )


def _vat_included(document: Document, memory: CorrectionMemory,
                  confidence: float) -> Optional[List[ProposedCorrection]]:
    """Recompute totals for a vendor that prints VAT-inclusive prices.

    Returns None when neither net nor gross is known, so the generic
    handler takes over.
    """
    fields = document.fields
    rate = fields.tax_rate if fields.tax_rate is not None else DEFAULT_TAX_RATE

    if fields.net_total is not None:
        tax = round(fields.net_total * rate, 2)
        gross = round(fields.net_total + tax, 2)
        return [
            _pattern_correction(document, memory, confidence, "tax_total", tax,
                                f"VAT included detected. Tax recalculated from net_total at rate {rate}."),
            _pattern_correction(document, memory, confidence, "gross_total", gross,
                                "VAT included detected. Gross recomputed as net_total + tax_total."),
        ]

    if fields.gross_total is not None:
        net = round(fields.gross_total / (1 + rate), 2)
        tax = round(fields.gross_total - net, 2)
        return [
            _pattern_correction(document, memory, confidence, "net_total", net,
                                f"VAT included detected. Net reverse-calculated from gross_total at rate {rate}."),
            _pattern_correction(document, memory, confidence, "tax_total", tax,
                                "VAT included detected. Tax computed as gross_total - net_total."),
        ]

    return None


def _freight_sku(document: Document, memory: CorrectionMemory, confidence: float) -> List[ProposedCorrection]:
    if not document.fields.line_items:
        return []

    first = document.fields.line_items[0]
    if first.sku == FREIGHT_SKU_CODE:
        return []

    return [_pattern_correction(
        document, memory, confidence, "line_items[0].sku", FREIGHT_SKU_CODE,
        f"Freight keywords detected (Seefracht/Shipping/Transport). Map SKU to {FREIGHT_SKU_CODE}."
    )]


def _skonto(document: Document, memory: CorrectionMemory, confidence: float) -> List[ProposedCorrection]:
    extracted = extract_discount_terms(document.raw_text)
    terms = extracted or DEFAULT_DISCOUNT_TERMS
    if document.fields.discount_terms == terms:
        return []

    if extracted:
        reason = f"Skonto terms detected and extracted. (confidence {confidence:.2f})"
    else:
        reason = f"Skonto habit recalled for vendor; proposing standard discount_terms. (confidence {confidence:.2f})"

    return [_pattern_correction(document, memory, confidence, "discount_terms", terms, reason)]


def _generic(document: Document, memory: CorrectionMemory, confidence: float) -> List[ProposedCorrection]:
    action = suggested_action_for(memory.pattern)
    reason = (
        f'Pattern "{memory.pattern}" detected. {memory.remediation}. '
        f"(confidence: {confidence:.2f}, reinforced {memory.reinforced_count}x, used {memory.usage_count}x)"
    )
    return [
        _pattern_correction(document, memory, confidence, field_path, f"[{action}]", reason, placeholder=True)
        for field_path in target_fields_for(memory.pattern)
    ]
