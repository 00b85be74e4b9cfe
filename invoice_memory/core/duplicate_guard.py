"""
Duplicate guard - remembers which (vendor, document number) pairs have already been learned from.
Once a pair is marked, recall reports it as a duplicate and learning is blocked until the store is reset.
"""

import sqlite3
from typing import Any, Dict, List, Optional

from .db import fetch_all, fetch_one, now_iso, transaction


def is_seen(vendor: str, document_number: str, conn: Optional[sqlite3.Connection] = None) -> bool:
    """Check whether a document was already processed."""
    row = fetch_one(
        "SELECT 1 FROM document_seen WHERE vendor = ? AND document_number = ? LIMIT 1",
        (vendor, document_number),
        conn
    )
    return row is not None


def find_seen(vendor: str, document_number: str,
              conn: Optional[sqlite3.Connection] = None) -> Optional[Dict[str, Any]]:
    row = fetch_one(
        "SELECT vendor, document_number, document_id, first_seen_at FROM document_seen "
        "WHERE vendor = ? AND document_number = ?",
        (vendor, document_number),
        conn
    )
    return dict(row) if row else None


def mark_seen(vendor: str, document_number: str, document_id: str = None,
              conn: Optional[sqlite3.Connection] = None) -> bool:
    """Mark a document as processed.

    Idempotent: the UNIQUE(vendor, document_number) constraint absorbs repeats.
    Returns True only for the first logical processing.
    """
    with transaction(conn) as tx:
        cursor = tx.execute(
            "INSERT OR IGNORE INTO document_seen (vendor, document_number, document_id, first_seen_at) "
            "VALUES (?, ?, ?, ?)",
            (vendor, document_number, document_id, now_iso())
        )
        return cursor.rowcount == 1


def list_seen(vendor: str) -> List[Dict[str, Any]]:
    """List processed documents for a vendor, newest first."""
    rows = fetch_all(
        "SELECT vendor, document_number, document_id, first_seen_at FROM document_seen "
        "WHERE vendor = ? ORDER BY first_seen_at DESC, id DESC",
        (vendor,)
    )
    return [dict(row) for row in rows]
