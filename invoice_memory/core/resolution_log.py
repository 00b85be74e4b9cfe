"""
Resolution log - append-only record of every human approval or rejection.
"""

import sqlite3
from typing import List, Optional

from util.logging import logger

from .db import fetch_all, parse_timestamp, transaction
from .schema import MemoryKind, ResolutionRecord


def record_resolution(record: ResolutionRecord, conn: Optional[sqlite3.Connection] = None) -> ResolutionRecord:
    """Append a resolution and return it with its row id."""
    with transaction(conn) as tx:
        cursor = tx.execute(
            "INSERT INTO resolution_log (document_id, vendor, memory_kind, memory_ref, approved, "
            "confidence_delta, timestamp) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                record.document_id,
                record.vendor,
                record.memory_kind.value,
                record.memory_ref,
                1 if record.approved else 0,
                record.confidence_delta,
                record.timestamp.isoformat(),
            )
        )
        record.id = cursor.lastrowid

    logger.log_resolution(record.document_id, record.memory_kind.value, record.memory_ref,
                          record.approved, record.confidence_delta)
    return record


def list_resolutions(document_id: str) -> List[ResolutionRecord]:
    """Resolutions for one document, oldest first."""
    rows = fetch_all(
        "SELECT id, document_id, vendor, memory_kind, memory_ref, approved, confidence_delta, timestamp "
        "FROM resolution_log WHERE document_id = ? ORDER BY id ASC",
        (document_id,)
    )
    return [
        ResolutionRecord(
            id=row["id"],
            document_id=row["document_id"],
            vendor=row["vendor"],
            memory_kind=MemoryKind(row["memory_kind"]),
            memory_ref=row["memory_ref"],
            approved=bool(row["approved"]),
            confidence_delta=row["confidence_delta"],
            timestamp=parse_timestamp(row["timestamp"]),
        )
        for row in rows
    ]
