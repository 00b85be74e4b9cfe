"""
Structured logging for the correction pipeline.
Every stage reports through one logger so the Recall/Apply/Decide/Learn trail reads as one stream.
"""

import logging
import os
from typing import Any, Dict, List


class StructuredLogger:
    """Structured logger for pipeline stages and memory writes."""

    def __init__(self, name: str = "invoice_memory"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.info(message)

    def log_recall(self, document_id: str, vendor: str, vendor_count: int, correction_count: int, is_duplicate: bool):
        """Log the memory context loaded for a document."""
        details = {
            "document_id": document_id,
            "vendor": vendor,
            "vendor_mappings": vendor_count,
            "correction_patterns": correction_count,
            "is_duplicate": is_duplicate
        }
        self.log_operation("recall", "duplicate" if is_duplicate else "success", details)

    def log_corrections_proposed(self, document_id: str, corrections: List[Any]):
        """Log proposed corrections by field and source."""
        details = {
            "document_id": document_id,
            "count": len(corrections),
            "fields": [f"{c.field}<-{c.source.value}" for c in corrections]
        }
        self.log_operation("apply", "proposed", details)

    def log_decision(self, document_id: str, outcome: str, confidence: float, requires_review: bool):
        """Log the classifier outcome for a document."""
        details = {
            "document_id": document_id,
            "outcome": outcome,
            "confidence": round(confidence, 4),
            "requires_human_review": requires_review
        }
        self.log_operation("decide", outcome.lower(), details)

    def log_learn(self, document_id: str, final_decision: str, resolutions: int, memory_updates: List[str]):
        """Log the outcome of a learn pass."""
        details = {
            "document_id": document_id,
            "final_decision": final_decision,
            "resolutions": resolutions,
            "memory_updates": memory_updates
        }
        self.log_operation("learn", final_decision, details)

    def log_memory_update(self, kind: str, memory_id: int, action: str, old_confidence: float = None,
                          new_confidence: float = None, details: Dict[str, Any] = None):
        """Log a write against one memory row."""
        log_details = {"kind": kind, "memory_id": memory_id}
        if old_confidence is not None:
            log_details["old_confidence"] = round(old_confidence, 4)
        if new_confidence is not None:
            log_details["new_confidence"] = round(new_confidence, 4)
        if details:
            log_details.update(details)

        self.log_operation(f"memory.{action}", "success", log_details)

    def log_duplicate_blocked(self, vendor: str, document_number: str, stage: str):
        """Log that the duplicate guard short-circuited a stage."""
        details = {"vendor": vendor, "document_number": document_number, "stage": stage}
        self.log_operation("duplicate_guard.blocked", "skipped", details)

    def log_resolution(self, document_id: str, kind: str, memory_ref: str, approved: bool, delta: float):
        """Log a resolution record write."""
        details = {
            "document_id": document_id,
            "kind": kind,
            "memory_ref": memory_ref,
            "delta": delta
        }
        self.log_operation("resolution.recorded", "approved" if approved else "rejected", details)

    def log_stage_failure(self, stage: str, document_id: str, error: Exception):
        """Log a failed pipeline stage with its cause."""
        details = {
            "document_id": document_id,
            "error_type": type(error).__name__,
            "error": str(error)[:200]
        }
        self.logger.error(f"Operation: {stage}, Status: failed, Details: {details}")

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()


def sanitize_payload(payload: Any, limit: int = 100) -> Any:
    """Truncate long strings (raw invoice text) before they reach a log line."""
    if isinstance(payload, dict):
        return {k: sanitize_payload(v, limit) for k, v in payload.items()}
    elif isinstance(payload, str):
        return payload[:limit] + "..." if len(payload) > limit else payload
    elif isinstance(payload, (list, tuple)):
        return [sanitize_payload(item, limit) for item in payload]
    else:
        return payload
