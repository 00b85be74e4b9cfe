"""
Request and response models for the HTTP API.
Requests convert into the frozen domain types before reaching the pipeline.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, field_validator

from ..core.schema import (
    ConfidenceEvent,
    CorrectionMemory,
    Document,
    FinalDecision,
    HumanCorrection,
    HumanFeedback,
    InvoiceFields,
    LineItem,
    ResolutionRecord,
    VendorMemory,
)


class LineItemModel(BaseModel):
    qty: float
    unit_price: float
    sku: Optional[str] = None
    description: Optional[str] = None


class InvoiceFieldsModel(BaseModel):
    invoice_number: str
    invoice_date: Optional[str] = None
    service_date: Optional[str] = None
    currency: Optional[str] = None
    po_number: Optional[str] = None
    net_total: Optional[float] = None
    tax_rate: Optional[float] = None
    tax_total: Optional[float] = None
    gross_total: Optional[float] = None
    line_items: List[LineItemModel] = []
    discount_terms: Optional[str] = None

    @field_validator('invoice_number')
    @classmethod
    def invoice_number_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('invoice_number cannot be empty')
        return v

    @field_validator('tax_rate')
    @classmethod
    def tax_rate_must_be_fraction(cls, v):
        if v is not None and not 0 <= v < 1:
            raise ValueError('tax_rate must be a fraction in [0, 1)')
        return v


class DocumentRequest(BaseModel):
    document_id: str
    vendor: str
    fields: InvoiceFieldsModel
    raw_text: str = ""
    extraction_confidence: Optional[float] = None

    @field_validator('document_id')
    @classmethod
    def document_id_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('document_id cannot be empty')
        return v

    @field_validator('vendor')
    @classmethod
    def vendor_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('vendor cannot be empty')
        return v

    def to_document(self) -> Document:
        fields = self.fields.model_dump()
        fields["line_items"] = tuple(LineItem(**item) for item in fields["line_items"])
        return Document(
            document_id=self.document_id,
            vendor=self.vendor,
            fields=InvoiceFields(**fields),
            raw_text=self.raw_text,
            extraction_confidence=self.extraction_confidence,
        )


class HumanCorrectionModel(BaseModel):
    field: str
    from_value: Any = None
    to_value: Any = None
    reason: str = ""

    @field_validator('field')
    @classmethod
    def field_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('field cannot be empty')
        return v


class FeedbackRequest(BaseModel):
    document: DocumentRequest
    corrections: List[HumanCorrectionModel] = []
    final_decision: str

    @field_validator('final_decision')
    @classmethod
    def final_decision_must_be_valid(cls, v):
        valid_decisions = [d.value for d in FinalDecision]
        if v not in valid_decisions:
            raise ValueError(f'final_decision must be one of: {valid_decisions}')
        return v

    def to_feedback(self) -> HumanFeedback:
        return HumanFeedback(
            document_id=self.document.document_id,
            vendor=self.document.vendor,
            corrections=tuple(HumanCorrection(**c.model_dump()) for c in self.corrections),
            final_decision=FinalDecision(self.final_decision),
        )


class ProposedCorrectionResponse(BaseModel):
    field: str
    from_value: Any = None
    to_value: Any = None
    confidence: float
    source: str
    reason: str
    vendor: Optional[str] = None
    memory_kind: Optional[str] = None
    memory_id: Optional[int] = None
    memory_ref: Optional[str] = None
    placeholder: bool = False


class AuditEntryResponse(BaseModel):
    document_id: str
    step: str
    timestamp: datetime
    details: str
    meta: Dict[str, Any] = {}


class ProcessResponse(BaseModel):
    document_id: str
    normalized_fields: Dict[str, Any]
    proposed_corrections: List[ProposedCorrectionResponse]
    decision: str
    requires_human_review: bool
    confidence_score: float
    reasoning: str
    memory_updates: List[str]
    audit_trail: List[AuditEntryResponse]


class LearnResponse(BaseModel):
    document_id: str
    final_decision: str
    skipped_duplicate: bool
    resolutions: int
    memory_updates: List[str]


class VendorMemoryResponse(BaseModel):
    id: int
    vendor: str
    source_label: str
    target_field: str
    confidence: float
    usage_count: int
    reinforced_count: int
    rejected_count: int
    last_used_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_memory(cls, memory: VendorMemory) -> "VendorMemoryResponse":
        return cls(
            id=memory.id,
            vendor=memory.vendor,
            source_label=memory.source_label,
            target_field=memory.target_field,
            confidence=memory.confidence,
            usage_count=memory.usage_count,
            reinforced_count=memory.reinforced_count,
            rejected_count=memory.rejected_count,
            last_used_at=memory.last_used_at,
            updated_at=memory.updated_at,
        )


class CorrectionMemoryResponse(BaseModel):
    id: int
    vendor: Optional[str] = None
    pattern: str
    remediation: str
    confidence: float
    usage_count: int
    reinforced_count: int
    rejected_count: int
    last_used_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_memory(cls, memory: CorrectionMemory) -> "CorrectionMemoryResponse":
        return cls(
            id=memory.id,
            vendor=memory.vendor,
            pattern=memory.pattern,
            remediation=memory.remediation,
            confidence=memory.confidence,
            usage_count=memory.usage_count,
            reinforced_count=memory.reinforced_count,
            rejected_count=memory.rejected_count,
            last_used_at=memory.last_used_at,
            updated_at=memory.updated_at,
        )


class ResolutionResponse(BaseModel):
    id: int
    document_id: str
    vendor: str
    memory_kind: str
    memory_ref: Optional[str] = None
    approved: bool
    confidence_delta: float
    timestamp: datetime

    @classmethod
    def from_record(cls, record: ResolutionRecord) -> "ResolutionResponse":
        return cls(
            id=record.id,
            document_id=record.document_id,
            vendor=record.vendor,
            memory_kind=record.memory_kind.value,
            memory_ref=record.memory_ref,
            approved=record.approved,
            confidence_delta=record.confidence_delta,
            timestamp=record.timestamp,
        )


class HealthResponse(BaseModel):
    status: str
    version: str
    db_health: bool
    memory_counts: Dict[str, int]


class ErrorResponse(BaseModel):
    error_type: str
    message: str
    timestamp: datetime = None
    details: Optional[Dict[str, Any]] = None

    def __init__(self, **data):
        super().__init__(timestamp=datetime.now(), **data)


class ConfidenceEventResponse(BaseModel):
    memory_kind: str
    memory_id: int
    old_confidence: Optional[float] = None
    new_confidence: float
    delta: float
    reason: str
    timestamp: datetime

    @classmethod
    def from_event(cls, event: ConfidenceEvent) -> "ConfidenceEventResponse":
        return cls(
            memory_kind=event.memory_kind.value,
            memory_id=event.memory_id,
            old_confidence=event.old_confidence,
            new_confidence=event.new_confidence,
            delta=event.delta,
            reason=event.reason,
            timestamp=event.timestamp,
        )
