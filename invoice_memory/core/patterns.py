"""
Correction pattern catalog.

Each known pattern has the keywords that make it relevant to a document, the
keywords and fields that let Learn infer it from a human correction, the
fields it targets, and one canonical remediation text. Seeding and learning
both use the canonical text, so a learned pattern lands on the seeded row.
"""

from dataclasses import dataclass
from typing import Dict, List, Tuple

VAT_INCLUDED = "VAT_INCLUDED"
SKONTO = "SKONTO"
FREIGHT_SKU = "FREIGHT_SKU"


@dataclass(frozen=True)
class PatternSpec:
    name: str
    keywords: Tuple[str, ...]
    learn_keywords: Tuple[str, ...]
    learn_fields: Tuple[str, ...]
    target_fields: Tuple[str, ...]
    remediation: str
    suggested_action: str

    def touches(self, field_path: str) -> bool:
        """True if a corrected field is one this pattern learns from."""
        for learn_field in self.learn_fields:
            if learn_field.startswith("*"):
                if field_path.endswith(learn_field[1:]):
                    return True
            elif field_path == learn_field:
                return True
        return False


PATTERNS: Dict[str, PatternSpec] = {
    VAT_INCLUDED: PatternSpec(
        name=VAT_INCLUDED,
        keywords=("vat", "mwst", "inkl", "incl", "included", "prices incl"),
        learn_keywords=("mwst", "vat", "incl"),
        learn_fields=("tax_total", "gross_total", "net_total"),
        target_fields=("net_total", "tax_total"),
        remediation="VAT included in pricing. Recalculate tax and totals",
        suggested_action="Recalculate net_total/tax_total because VAT is included in totals",
    ),
    SKONTO: PatternSpec(
        name=SKONTO,
        keywords=("skonto", "discount", "within", "days"),
        learn_keywords=("skonto", "discount"),
        learn_fields=("discount_terms",),
        target_fields=("discount_terms",),
        remediation="Extract and store discount_terms (Skonto) from invoice text",
        suggested_action="Extract and store discount_terms (Skonto)",
    ),
    FREIGHT_SKU: PatternSpec(
        name=FREIGHT_SKU,
        keywords=("seefracht", "shipping", "transport", "freight"),
        learn_keywords=("seefracht", "shipping", "transport", "freight"),
        learn_fields=("*.sku",),
        target_fields=("line_items[0].sku",),
        remediation="Map freight description (Seefracht/Shipping/Transport) to SKU FREIGHT",
        suggested_action="Map freight description to SKU FREIGHT",
    ),
}

# Labels that vendors print in front of a field value, tried when the
# reviewer's reason does not quote the label itself
LABEL_CATALOG: Dict[str, Tuple[str, ...]] = {
    "service_date": ("Leistungsdatum", "Service date", "Lieferdatum"),
    "invoice_date": ("Rechnungsdatum", "Invoice date"),
    "po_number": ("Bestellnummer", "PO Number"),
}

# Fields whose printed value is a date or number token the label matcher can read
LABEL_VALUE_FIELDS = ("service_date", "invoice_date", "po_number", "invoice_number")

# Fields that belong to correction patterns rather than vendor label mappings
CORRECTION_FIELDS = ("tax_total", "gross_total", "net_total", "tax_rate", "discount_terms")


def keywords_for(pattern: str) -> Tuple[str, ...]:
    """Relevance keywords for a pattern; unknown patterns have none."""
    spec = PATTERNS.get(pattern)
    return spec.keywords if spec else ()


def remediation_for(pattern: str) -> str:
    spec = PATTERNS.get(pattern)
    if spec is None:
        raise ValueError(f"Unknown correction pattern: {pattern}")
    return spec.remediation


def target_fields_for(pattern: str) -> List[str]:
    spec = PATTERNS.get(pattern)
    return list(spec.target_fields) if spec else []


def labels_for(field_path: str) -> Tuple[str, ...]:
    return LABEL_CATALOG.get(field_path, ())


def is_correction_field(field_path: str) -> bool:
    return field_path in CORRECTION_FIELDS or field_path.endswith(".sku")


def suggested_action_for(pattern: str) -> str:
    spec = PATTERNS.get(pattern)
    return spec.suggested_action if spec else f"No handler for pattern {pattern}"


def is_label_mappable(field_path: str) -> bool:
    return field_path in LABEL_VALUE_FIELDS
