"""
HTTP API for processing invoices, submitting review feedback and inspecting memory.
"""

from contextlib import asynccontextmanager
from typing import List

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from util.logging import logger

from ..core import correction_memory, vendor_memory
from ..core.audit import audit_to_dict, list_audit, list_confidence_events
from ..core.config import SEED_DEFAULTS_ON_STARTUP, VERSION, debug_enabled, validate_config
from ..core.db import health_check, init_db, memory_counts
from ..core.exceptions import MemoryNotFound, StageFailure
from ..core.resolution_log import list_resolutions
from ..core.schema import MemoryKind
from ..engine import run_pipeline, submit_feedback
from .schemas import (
    AuditEntryResponse,
    ConfidenceEventResponse,
    CorrectionMemoryResponse,
    DocumentRequest,
    ErrorResponse,
    FeedbackRequest,
    HealthResponse,
    LearnResponse,
    ProcessResponse,
    ResolutionResponse,
    VendorMemoryResponse,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    for issue in validate_config():
        logger.warning(f"Config issue: {issue}")

    init_db()
    if SEED_DEFAULTS_ON_STARTUP:
        correction_memory.seed_default_corrections()
    yield


app = FastAPI(
    title="Invoice Correction Memory API",
    version=VERSION,
    description="Learns invoice field corrections from human review, backed by SQLite",
    docs_url="/docs" if debug_enabled() else None,
    redoc_url="/redoc" if debug_enabled() else None,
    lifespan=lifespan
)


@app.get("/health", response_model=HealthResponse)
def health_check_endpoint():
    """Check system health."""
    db_health = health_check()
    counts = memory_counts() if db_health else {}

    return HealthResponse(
        status="healthy" if db_health else "unhealthy",
        version=VERSION,
        db_health=db_health,
        memory_counts=counts
    )


@app.post("/documents/process", response_model=ProcessResponse)
def process_document(request: DocumentRequest):
    """Run Recall, Apply and Decide for one document."""
    result = run_pipeline(request.to_document())
    return ProcessResponse(**result.to_dict())


@app.post("/documents/feedback", response_model=LearnResponse)
def submit_document_feedback(request: FeedbackRequest):
    """Learn from a reviewer's approval or rejection."""
    result = submit_feedback(request.document.to_document(), request.to_feedback())
    return LearnResponse(**result.to_dict())


@app.get("/memory/vendor/{vendor}", response_model=List[VendorMemoryResponse])
def get_vendor_memory(vendor: str):
    return [VendorMemoryResponse.from_memory(m) for m in vendor_memory.find_candidates(vendor)]


@app.get("/memory/corrections/{vendor}", response_model=List[CorrectionMemoryResponse])
def get_correction_memory(vendor: str):
    """Correction patterns that apply to a vendor, global ones included."""
    return [CorrectionMemoryResponse.from_memory(m) for m in correction_memory.find_candidates(vendor)]


def _parse_kind(kind: str) -> MemoryKind:
    try:
        return MemoryKind(kind.upper())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid memory kind: {kind}")


@app.post("/memory/{kind}/{memory_id}/reject")
def reject_memory(kind: str, memory_id: int):
    """Count a reviewer rejection against one memory row."""
    memory_kind = _parse_kind(kind)

    try:
        if memory_kind == MemoryKind.VENDOR:
            return VendorMemoryResponse.from_memory(vendor_memory.reject(memory_id))
        return CorrectionMemoryResponse.from_memory(correction_memory.reject(memory_id))
    except MemoryNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.get("/memory/{kind}/{memory_id}/events", response_model=List[ConfidenceEventResponse])
def get_confidence_events(kind: str, memory_id: int):
    """Confidence history of one memory row, oldest first."""
    memory_kind = _parse_kind(kind)
    repository = vendor_memory if memory_kind == MemoryKind.VENDOR else correction_memory
    if repository.find_by_id(memory_id) is None:
        raise HTTPException(status_code=404, detail=f"{memory_kind.value} memory {memory_id} not found")

    return [ConfidenceEventResponse.from_event(e) for e in list_confidence_events(memory_kind, memory_id)]


@app.get("/resolutions/{document_id}", response_model=List[ResolutionResponse])
def get_resolutions(document_id: str):
    return [ResolutionResponse.from_record(r) for r in list_resolutions(document_id)]


@app.get("/audit/{document_id}", response_model=List[AuditEntryResponse])
def get_audit(document_id: str):
    return [AuditEntryResponse(**audit_to_dict(entry)) for entry in list_audit(document_id)]


@app.exception_handler(StageFailure)
async def stage_failure_handler(request: Request, exc: StageFailure):
    """Map pipeline stage failures to a 500 with a structured body."""
    details = {"stage": exc.stage, "document_id": exc.document_id}
    if debug_enabled() and exc.__cause__ is not None:
        details["cause"] = repr(exc.__cause__)

    body = ErrorResponse(error_type=type(exc).__name__, message=str(exc), details=details)
    return JSONResponse(status_code=500, content=body.model_dump(mode="json"))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions."""
    logger.error(f"Unhandled exception: {exc}")
    content = {"detail": "Internal server error"}
    if debug_enabled():
        content["debug"] = str(exc)
    return JSONResponse(status_code=500, content=content)
