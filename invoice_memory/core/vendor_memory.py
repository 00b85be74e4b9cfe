"""
Vendor memory repository - per-vendor mappings from a printed label to an invoice field.

Natural key is (vendor, source_label, target_field). Every write runs inside
transaction(), so concurrent approvals of the same mapping are serialized by
SQLite's write lock and none of them is lost.
"""

import sqlite3
from typing import List, Optional

from util.logging import logger

from .audit import record_confidence_event
from .config import INITIAL_MEMORY_CONFIDENCE
from .confidence import reinforce as reinforce_confidence
from .db import fetch_all, fetch_one, now_iso, parse_timestamp, transaction
from .exceptions import MemoryNotFound
from .schema import MemoryKind, VendorMemory

_COLUMNS = ("id, vendor, source_label, target_field, confidence, usage_count, reinforced_count, "
            "rejected_count, last_used_at, created_at, updated_at")


def _row_to_memory(row: sqlite3.Row) -> VendorMemory:
    return VendorMemory(
        id=row["id"],
        vendor=row["vendor"],
        source_label=row["source_label"],
        target_field=row["target_field"],
        confidence=row["confidence"],
        usage_count=row["usage_count"],
        reinforced_count=row["reinforced_count"],
        rejected_count=row["rejected_count"],
        last_used_at=parse_timestamp(row["last_used_at"]),
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row["updated_at"]),
    )


def find_by_key(vendor: str, source_label: str, target_field: str,
                conn: Optional[sqlite3.Connection] = None) -> Optional[VendorMemory]:
    """Exact lookup by natural key."""
    row = fetch_one(
        f"SELECT {_COLUMNS} FROM vendor_memory WHERE vendor = ? AND source_label = ? AND target_field = ?",
        (vendor, source_label, target_field),
        conn
    )
    return _row_to_memory(row) if row else None


def find_by_id(memory_id: int, conn: Optional[sqlite3.Connection] = None) -> Optional[VendorMemory]:
    row = fetch_one(f"SELECT {_COLUMNS} FROM vendor_memory WHERE id = ?", (memory_id,), conn)
    return _row_to_memory(row) if row else None


def find_candidates(vendor: str, conn: Optional[sqlite3.Connection] = None) -> List[VendorMemory]:
    """All mappings for a vendor, strongest first."""
    rows = fetch_all(
        f"SELECT {_COLUMNS} FROM vendor_memory WHERE vendor = ? "
        "ORDER BY confidence DESC, usage_count DESC, id ASC",
        (vendor,),
        conn
    )
    return [_row_to_memory(row) for row in rows]


def upsert_on_approval(vendor: str, source_label: str, target_field: str,
                       initial_confidence: float = INITIAL_MEMORY_CONFIDENCE,
                       conn: Optional[sqlite3.Connection] = None) -> VendorMemory:
    """Create the mapping, or reinforce it if it already exists.

    A new row counts the approval that created it as its first reinforcement.
    """
    with transaction(conn) as tx:
        existing = find_by_key(vendor, source_label, target_field, conn=tx)
        now = now_iso()

        if existing is None:
            cursor = tx.execute(
                "INSERT INTO vendor_memory (vendor, source_label, target_field, confidence, usage_count, "
                "reinforced_count, rejected_count, last_used_at, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, 0, 1, 0, ?, ?, ?)",
                (vendor, source_label, target_field, initial_confidence, now, now, now)
            )
            memory_id = cursor.lastrowid
            record_confidence_event(tx, MemoryKind.VENDOR, memory_id, None, initial_confidence, "created")
            logger.log_memory_update("vendor", memory_id, "created", new_confidence=initial_confidence,
                                     details={"vendor": vendor, "mapping": f"{source_label}->{target_field}"})
        else:
            memory_id = existing.id
            _reinforce_row(tx, existing, now)

        return find_by_id(memory_id, conn=tx)


def _reinforce_row(tx: sqlite3.Connection, memory: VendorMemory, now: str):
    new_confidence = reinforce_confidence(memory.confidence)
    tx.execute(
        "UPDATE vendor_memory SET confidence = ?, reinforced_count = reinforced_count + 1, "
        "usage_count = usage_count + 1, last_used_at = ?, updated_at = ? WHERE id = ?",
        (new_confidence, now, now, memory.id)
    )
    record_confidence_event(tx, MemoryKind.VENDOR, memory.id, memory.confidence, new_confidence, "reinforced")
    logger.log_memory_update("vendor", memory.id, "reinforced", memory.confidence, new_confidence)


def reinforce(memory_id: int, conn: Optional[sqlite3.Connection] = None) -> VendorMemory:
    """Reinforce an existing mapping by id."""
    with transaction(conn) as tx:
        existing = find_by_id(memory_id, conn=tx)
        if existing is None:
            raise MemoryNotFound(MemoryKind.VENDOR.value, memory_id)
        _reinforce_row(tx, existing, now_iso())
        return find_by_id(memory_id, conn=tx)


def reject(memory_id: int, conn: Optional[sqlite3.Connection] = None) -> VendorMemory:
    """Count a rejection. Confidence is left as it is."""
    with transaction(conn) as tx:
        existing = find_by_id(memory_id, conn=tx)
        if existing is None:
            raise MemoryNotFound(MemoryKind.VENDOR.value, memory_id)

        tx.execute(
            "UPDATE vendor_memory SET rejected_count = rejected_count + 1, updated_at = ? WHERE id = ?",
            (now_iso(), memory_id)
        )
        record_confidence_event(tx, MemoryKind.VENDOR, memory_id, existing.confidence, existing.confidence, "rejected")
        logger.log_memory_update("vendor", memory_id, "rejected", details={"rejected_count": existing.rejected_count + 1})
        return find_by_id(memory_id, conn=tx)


def record_usage(memory_id: int, conn: Optional[sqlite3.Connection] = None) -> VendorMemory:
    """Count an automatic application of the mapping."""
    with transaction(conn) as tx:
        now = now_iso()
        cursor = tx.execute(
            "UPDATE vendor_memory SET usage_count = usage_count + 1, last_used_at = ?, updated_at = ? WHERE id = ?",
            (now, now, memory_id)
        )
        if cursor.rowcount == 0:
            raise MemoryNotFound(MemoryKind.VENDOR.value, memory_id)
        logger.log_memory_update("vendor", memory_id, "used")
        return find_by_id(memory_id, conn=tx)
