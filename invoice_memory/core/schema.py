"""
Domain types shared by the repositories and the pipeline stages.
"""

import re
from dataclasses import dataclass, field, replace, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class MemoryKind(str, Enum):
    VENDOR = "VENDOR"
    CORRECTION = "CORRECTION"


class CorrectionSource(str, Enum):
    VENDOR_MEMORY = "vendor_memory"
    CORRECTION_MEMORY = "correction_memory"
    HEURISTIC = "heuristic"
    DUPLICATE_GUARD = "duplicate_guard"


class DecisionOutcome(str, Enum):
    AUTO_ACCEPT = "AUTO_ACCEPT"
    AUTO_CORRECT = "AUTO_CORRECT"
    ESCALATE = "ESCALATE"


class FinalDecision(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


# Document (input, read-only)

@dataclass(frozen=True)
class LineItem:
    qty: float
    unit_price: float
    sku: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class InvoiceFields:
    invoice_number: str
    invoice_date: Optional[str] = None
    service_date: Optional[str] = None
    currency: Optional[str] = None
    po_number: Optional[str] = None
    net_total: Optional[float] = None
    tax_rate: Optional[float] = None
    tax_total: Optional[float] = None
    gross_total: Optional[float] = None
    line_items: Tuple[LineItem, ...] = ()
    discount_terms: Optional[str] = None


@dataclass(frozen=True)
class Document:
    document_id: str
    vendor: str
    fields: InvoiceFields
    raw_text: str = ""
    extraction_confidence: Optional[float] = None

    @property
    def document_number(self) -> str:
        return self.fields.invoice_number


# Persisted memory

@dataclass
class VendorMemory:
    id: int
    vendor: str
    source_label: str
    target_field: str
    confidence: float
    usage_count: int = 0
    reinforced_count: int = 0
    rejected_count: int = 0
    last_used_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    relevance: float = 0.0  # recall-time score, never persisted

    @property
    def memory_ref(self) -> str:
        return f"{self.source_label}->{self.target_field}"


@dataclass
class CorrectionMemory:
    id: int
    vendor: Optional[str]
    pattern: str
    remediation: str
    confidence: float
    usage_count: int = 0
    reinforced_count: int = 0
    rejected_count: int = 0
    last_used_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    relevance: float = 0.0

    @property
    def is_global(self) -> bool:
        return self.vendor is None

    @property
    def memory_ref(self) -> str:
        return self.pattern


@dataclass
class ResolutionRecord:
    document_id: str
    vendor: str
    memory_kind: MemoryKind
    memory_ref: Optional[str]
    approved: bool
    confidence_delta: float
    timestamp: datetime
    id: Optional[int] = None


@dataclass
class ConfidenceEvent:
    memory_kind: MemoryKind
    memory_id: int
    old_confidence: Optional[float]
    new_confidence: float
    delta: float
    reason: str
    timestamp: datetime


# Pipeline values (ephemeral)

@dataclass
class ProposedCorrection:
    field: str
    from_value: Any
    to_value: Any
    confidence: float
    source: CorrectionSource
    reason: str
    vendor: Optional[str] = None
    memory_kind: Optional[MemoryKind] = None
    memory_id: Optional[int] = None
    memory_ref: Optional[str] = None
    placeholder: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["source"] = self.source.value
        data["memory_kind"] = self.memory_kind.value if self.memory_kind else None
        return data


@dataclass
class DuplicateMatch:
    vendor: str
    document_number: str
    document_id: Optional[str]
    reason: str


@dataclass
class MemoryContext:
    vendor_mappings: List[VendorMemory] = field(default_factory=list)
    corrections: List[CorrectionMemory] = field(default_factory=list)
    is_duplicate: bool = False
    duplicate_match: Optional[DuplicateMatch] = None


@dataclass
class Decision:
    outcome: DecisionOutcome
    requires_human_review: bool
    confidence_score: float
    reasoning: str


@dataclass
class AuditEntry:
    document_id: str
    step: str  # recall | apply | decide | learn
    timestamp: datetime
    details: str
    meta: Dict[str, Any] = field(default_factory=dict)


# Human feedback (input to Learn)

@dataclass(frozen=True)
class HumanCorrection:
    field: str
    from_value: Any
    to_value: Any
    reason: str = ""


@dataclass(frozen=True)
class HumanFeedback:
    document_id: str
    vendor: str
    corrections: Tuple[HumanCorrection, ...]
    final_decision: FinalDecision

    @property
    def approved(self) -> bool:
        return self.final_decision == FinalDecision.APPROVED


# Field paths: "service_date", "line_items[0].sku"

_PATH_TOKEN = re.compile(r"[^.\[\]]+")


def parse_field_path(path: str) -> List[Any]:
    """Split a field path into attribute names and list indexes."""
    if not path or not path.strip():
        raise ValueError("field path cannot be empty")
    return [int(tok) if tok.isdigit() else tok for tok in _PATH_TOKEN.findall(path)]


def resolve_field(fields: InvoiceFields, path: str) -> Any:
    """Read a value by field path; missing segments resolve to None."""
    value: Any = fields
    for token in parse_field_path(path):
        if value is None:
            return None
        if isinstance(token, int):
            value = value[token] if token < len(value) else None
        else:
            value = getattr(value, token, None)
    return value


def with_field(fields: InvoiceFields, path: str, new_value: Any) -> InvoiceFields:
    """Return a copy of fields with one value replaced. The original is untouched."""
    return _replace_path(fields, parse_field_path(path), new_value)


def _replace_path(obj: Any, tokens: List[Any], new_value: Any) -> Any:
    head, rest = tokens[0], tokens[1:]

    if isinstance(head, int):
        items = list(obj)
        if head >= len(items):
            raise ValueError(f"index {head} out of range")
        items[head] = _replace_path(items[head], rest, new_value) if rest else new_value
        return tuple(items)

    if not hasattr(obj, head):
        raise ValueError(f"unknown field '{head}'")
    current = getattr(obj, head)
    updated = _replace_path(current, rest, new_value) if rest else new_value
    return replace(obj, **{head: updated})
