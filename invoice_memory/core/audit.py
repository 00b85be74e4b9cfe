"""
Audit trail and confidence history.

audit_trail holds one row per pipeline step for a document; confidence_events
holds one row per write that touched a memory's confidence or counters.
"""

import json
import sqlite3
from typing import Any, Dict, List, Optional

from .db import get_db, now_iso, parse_timestamp, transaction
from .schema import AuditEntry, ConfidenceEvent, MemoryKind


def record_audit(entry: AuditEntry, conn: Optional[sqlite3.Connection] = None) -> int:
    """Persist one audit entry and return its row id."""
    with transaction(conn) as tx:
        cursor = tx.execute(
            "INSERT INTO audit_trail (document_id, step, timestamp, details, meta) VALUES (?, ?, ?, ?, ?)",
            (
                entry.document_id,
                entry.step,
                entry.timestamp.isoformat(),
                entry.details,
                json.dumps(entry.meta, default=str) if entry.meta else None,
            )
        )
        return cursor.lastrowid


def list_audit(document_id: str) -> List[AuditEntry]:
    """Audit entries for a document in the order they were written."""
    with get_db() as conn:
        rows = conn.execute(
            "SELECT document_id, step, timestamp, details, meta FROM audit_trail "
            "WHERE document_id = ? ORDER BY id ASC",
            (document_id,)
        ).fetchall()

    return [
        AuditEntry(
            document_id=row["document_id"],
            step=row["step"],
            timestamp=parse_timestamp(row["timestamp"]),
            details=row["details"],
            meta=json.loads(row["meta"]) if row["meta"] else {},
        )
        for row in rows
    ]


def record_confidence_event(conn: sqlite3.Connection, kind: MemoryKind, memory_id: int,
                            old_confidence: Optional[float], new_confidence: float, reason: str):
    """Append a confidence change inside the caller's transaction."""
    delta = new_confidence - (old_confidence if old_confidence is not None else 0.0)
    conn.execute(
        "INSERT INTO confidence_events (memory_kind, memory_id, old_confidence, new_confidence, delta, reason, timestamp) "
        "VALUES (?, ?, ?, ?, ?, ?, ?)",
        (kind.value, memory_id, old_confidence, new_confidence, round(delta, 6), reason, now_iso())
    )


def list_confidence_events(kind: MemoryKind, memory_id: int) -> List[ConfidenceEvent]:
    with get_db() as conn:
        rows = conn.execute(
            "SELECT memory_kind, memory_id, old_confidence, new_confidence, delta, reason, timestamp "
            "FROM confidence_events WHERE memory_kind = ? AND memory_id = ? ORDER BY id ASC",
            (kind.value, memory_id)
        ).fetchall()

    return [
        ConfidenceEvent(
            memory_kind=MemoryKind(row["memory_kind"]),
            memory_id=row["memory_id"],
            old_confidence=row["old_confidence"],
            new_confidence=row["new_confidence"],
            delta=row["delta"],
            reason=row["reason"],
            timestamp=parse_timestamp(row["timestamp"]),
        )
        for row in rows
    ]


def audit_to_dict(entry: AuditEntry) -> Dict[str, Any]:
    return {
        "document_id": entry.document_id,
        "step": entry.step,
        "timestamp": entry.timestamp.isoformat(),
        "details": entry.details,
        "meta": entry.meta,
    }
