"""
Correction memory repository - recurring error patterns and how to fix them.

Natural key is (vendor, pattern, remediation). A pattern with vendor None
applies to every vendor; it is stored with vendor '' so the unique
constraint holds for global rows too.
"""

import sqlite3
from typing import Iterable, List, Optional, Tuple

from util.logging import logger

from .audit import record_confidence_event
from .config import DEFAULT_CORRECTION_SEEDS, INITIAL_MEMORY_CONFIDENCE, SEED_CONFIDENCE
from .confidence import reinforce as reinforce_confidence
from .db import fetch_all, fetch_one, now_iso, parse_timestamp, transaction
from .exceptions import MemoryNotFound
from .patterns import remediation_for
from .schema import CorrectionMemory, MemoryKind

GLOBAL_SCOPE = ""

_COLUMNS = ("id, vendor, pattern, remediation, confidence, usage_count, reinforced_count, "
            "rejected_count, last_used_at, created_at, updated_at")


def _scope(vendor: Optional[str]) -> str:
    return vendor if vendor else GLOBAL_SCOPE


def _row_to_memory(row: sqlite3.Row) -> CorrectionMemory:
    return CorrectionMemory(
        id=row["id"],
        vendor=row["vendor"] or None,
        pattern=row["pattern"],
        remediation=row["remediation"],
        confidence=row["confidence"],
        usage_count=row["usage_count"],
        reinforced_count=row["reinforced_count"],
        rejected_count=row["rejected_count"],
        last_used_at=parse_timestamp(row["last_used_at"]),
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row["updated_at"]),
    )


def find_by_key(vendor: Optional[str], pattern: str, remediation: str,
                conn: Optional[sqlite3.Connection] = None) -> Optional[CorrectionMemory]:
    """Exact lookup by natural key; vendor None looks up the global row."""
    row = fetch_one(
        f"SELECT {_COLUMNS} FROM correction_memory WHERE vendor = ? AND pattern = ? AND remediation = ?",
        (_scope(vendor), pattern, remediation),
        conn
    )
    return _row_to_memory(row) if row else None


def find_by_pattern(vendor: Optional[str], pattern: str,
                    conn: Optional[sqlite3.Connection] = None) -> Optional[CorrectionMemory]:
    """Strongest row for a pattern in exactly one scope (a vendor, or global)."""
    row = fetch_one(
        f"SELECT {_COLUMNS} FROM correction_memory WHERE vendor = ? AND pattern = ? "
        "ORDER BY confidence DESC, reinforced_count DESC, id ASC LIMIT 1",
        (_scope(vendor), pattern),
        conn
    )
    return _row_to_memory(row) if row else None


def find_by_id(memory_id: int, conn: Optional[sqlite3.Connection] = None) -> Optional[CorrectionMemory]:
    row = fetch_one(f"SELECT {_COLUMNS} FROM correction_memory WHERE id = ?", (memory_id,), conn)
    return _row_to_memory(row) if row else None


def find_candidates(vendor: str, conn: Optional[sqlite3.Connection] = None) -> List[CorrectionMemory]:
    """Vendor patterns plus global patterns, strongest first."""
    rows = fetch_all(
        f"SELECT {_COLUMNS} FROM correction_memory WHERE vendor = ? OR vendor = ? "
        "ORDER BY confidence DESC, usage_count DESC, id ASC",
        (_scope(vendor), GLOBAL_SCOPE),
        conn
    )
    return [_row_to_memory(row) for row in rows]


def upsert_on_approval(vendor: Optional[str], pattern: str, remediation: str,
                       initial_confidence: float = INITIAL_MEMORY_CONFIDENCE,
                       conn: Optional[sqlite3.Connection] = None) -> CorrectionMemory:
    """Create the pattern row, or reinforce it if it already exists."""
    with transaction(conn) as tx:
        existing = find_by_key(vendor, pattern, remediation, conn=tx)
        now = now_iso()

        if existing is None:
            cursor = tx.execute(
                "INSERT INTO correction_memory (vendor, pattern, remediation, confidence, usage_count, "
                "reinforced_count, rejected_count, last_used_at, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, 0, 1, 0, ?, ?, ?)",
                (_scope(vendor), pattern, remediation, initial_confidence, now, now, now)
            )
            memory_id = cursor.lastrowid
            record_confidence_event(tx, MemoryKind.CORRECTION, memory_id, None, initial_confidence, "created")
            logger.log_memory_update("correction", memory_id, "created", new_confidence=initial_confidence,
                                     details={"vendor": vendor, "pattern": pattern})
        else:
            memory_id = existing.id
            _reinforce_row(tx, existing, now)

        return find_by_id(memory_id, conn=tx)


def _reinforce_row(tx: sqlite3.Connection, memory: CorrectionMemory, now: str):
    new_confidence = reinforce_confidence(memory.confidence)
    tx.execute(
        "UPDATE correction_memory SET confidence = ?, reinforced_count = reinforced_count + 1, "
        "usage_count = usage_count + 1, last_used_at = ?, updated_at = ? WHERE id = ?",
        (new_confidence, now, now, memory.id)
    )
    record_confidence_event(tx, MemoryKind.CORRECTION, memory.id, memory.confidence, new_confidence, "reinforced")
    logger.log_memory_update("correction", memory.id, "reinforced", memory.confidence, new_confidence,
                             details={"pattern": memory.pattern})


def reinforce(memory_id: int, conn: Optional[sqlite3.Connection] = None) -> CorrectionMemory:
    """Reinforce an existing pattern row by id."""
    with transaction(conn) as tx:
        existing = find_by_id(memory_id, conn=tx)
        if existing is None:
            raise MemoryNotFound(MemoryKind.CORRECTION.value, memory_id)
        _reinforce_row(tx, existing, now_iso())
        return find_by_id(memory_id, conn=tx)


def reject(memory_id: int, conn: Optional[sqlite3.Connection] = None) -> CorrectionMemory:
    """Count a rejection. Confidence is left as it is."""
    with transaction(conn) as tx:
        existing = find_by_id(memory_id, conn=tx)
        if existing is None:
            raise MemoryNotFound(MemoryKind.CORRECTION.value, memory_id)

        tx.execute(
            "UPDATE correction_memory SET rejected_count = rejected_count + 1, updated_at = ? WHERE id = ?",
            (now_iso(), memory_id)
        )
        record_confidence_event(tx, MemoryKind.CORRECTION, memory_id, existing.confidence, existing.confidence,
                                "rejected")
        logger.log_memory_update("correction", memory_id, "rejected",
                                 details={"rejected_count": existing.rejected_count + 1})
        return find_by_id(memory_id, conn=tx)


def record_usage(memory_id: int, conn: Optional[sqlite3.Connection] = None) -> CorrectionMemory:
    """Count an automatic application of the pattern."""
    with transaction(conn) as tx:
        now = now_iso()
        cursor = tx.execute(
            "UPDATE correction_memory SET usage_count = usage_count + 1, last_used_at = ?, updated_at = ? "
            "WHERE id = ?",
            (now, now, memory_id)
        )
        if cursor.rowcount == 0:
            raise MemoryNotFound(MemoryKind.CORRECTION.value, memory_id)
        logger.log_memory_update("correction", memory_id, "used")
        return find_by_id(memory_id, conn=tx)


def seed(vendor: Optional[str], pattern: str, remediation: str = None,
         confidence: float = SEED_CONFIDENCE, conn: Optional[sqlite3.Connection] = None) -> bool:
    """Insert a starting pattern with zero counts. Existing rows are left alone.

    Returns True if a row was inserted.
    """
    remediation = remediation or remediation_for(pattern)
    with transaction(conn) as tx:
        now = now_iso()
        cursor = tx.execute(
            "INSERT OR IGNORE INTO correction_memory (vendor, pattern, remediation, confidence, usage_count, "
            "reinforced_count, rejected_count, last_used_at, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, 0, 0, 0, NULL, ?, ?)",
            (_scope(vendor), pattern, remediation, confidence, now, now)
        )
        if cursor.rowcount != 1:
            return False

        record_confidence_event(tx, MemoryKind.CORRECTION, cursor.lastrowid, None, confidence, "seeded")
        logger.log_memory_update("correction", cursor.lastrowid, "seeded", new_confidence=confidence,
                                 details={"vendor": vendor, "pattern": pattern})
        return True


def seed_default_corrections(seeds: Iterable[Tuple[Optional[str], str]] = None) -> int:
    """Seed the default (vendor, pattern) pairs. Safe to call repeatedly."""
    seeds = DEFAULT_CORRECTION_SEEDS if seeds is None else seeds
    with transaction() as tx:
        inserted = sum(1 for vendor, pattern in seeds if seed(vendor, pattern, conn=tx))

    logger.log_operation("seed_default_corrections", "success", {"inserted": inserted})
    return inserted
