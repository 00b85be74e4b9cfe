"""
SQLite persistence for vendor mappings, correction patterns, resolutions and the duplicate guard.
Connections run in autocommit mode; multi-statement writes go through transaction().
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Generator, List, Optional

from .config import DB_BUSY_TIMEOUT_SEC, ensure_db_directory, get_db_path

MEMORY_TABLES = [
    "vendor_memory",
    "correction_memory",
    "resolution_log",
    "confidence_events",
    "audit_trail",
    "document_seen",
]


def now_iso() -> str:
    """Timestamp format stored in every table."""
    return datetime.now().isoformat()


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@contextmanager
def get_db() -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection."""
    ensure_db_directory()
    conn = sqlite3.connect(get_db_path(), timeout=DB_BUSY_TIMEOUT_SEC, isolation_level=None)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction(conn: Optional[sqlite3.Connection] = None) -> Generator[sqlite3.Connection, None, None]:
    """Run a block inside BEGIN IMMEDIATE, committing on success and rolling back on error.

    If a connection is passed in, the caller already owns a transaction and the
    block simply joins it.
    """
    if conn is not None:
        yield conn
        return

    with get_db() as own_conn:
        own_conn.execute("BEGIN IMMEDIATE")
        try:
            yield own_conn
        except BaseException:
            own_conn.execute("ROLLBACK")
            raise
        else:
            own_conn.execute("COMMIT")


def fetch_all(sql: str, params: tuple = (), conn: Optional[sqlite3.Connection] = None) -> List[sqlite3.Row]:
    """Run a read on the caller's connection, or on a fresh one."""
    if conn is not None:
        return conn.execute(sql, params).fetchall()
    with get_db() as own_conn:
        return own_conn.execute(sql, params).fetchall()


def fetch_one(sql: str, params: tuple = (), conn: Optional[sqlite3.Connection] = None) -> Optional[sqlite3.Row]:
    rows = fetch_all(sql, params, conn)
    return rows[0] if rows else None


def init_db():
    """Initialize the database with required tables."""
    with get_db() as conn:
        conn.execute("PRAGMA journal_mode = WAL")

        # One row per mapping: vendor + source label + target field
        conn.execute('''
            CREATE TABLE IF NOT EXISTS vendor_memory (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                vendor TEXT NOT NULL,
                source_label TEXT NOT NULL,
                target_field TEXT NOT NULL,
                confidence REAL NOT NULL DEFAULT 0.3,
                usage_count INTEGER NOT NULL DEFAULT 0,
                reinforced_count INTEGER NOT NULL DEFAULT 0,
                rejected_count INTEGER NOT NULL DEFAULT 0,
                last_used_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE (vendor, source_label, target_field)
            )
        ''')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_vendor_memory_vendor ON vendor_memory(vendor)')

        # Global patterns are stored with vendor = '' so the UNIQUE constraint covers them
        conn.execute('''
            CREATE TABLE IF NOT EXISTS correction_memory (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                vendor TEXT NOT NULL DEFAULT '',
                pattern TEXT NOT NULL,
                remediation TEXT NOT NULL,
                confidence REAL NOT NULL DEFAULT 0.3,
                usage_count INTEGER NOT NULL DEFAULT 0,
                reinforced_count INTEGER NOT NULL DEFAULT 0,
                rejected_count INTEGER NOT NULL DEFAULT 0,
                last_used_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE (vendor, pattern, remediation)
            )
        ''')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_correction_memory_vendor ON correction_memory(vendor)')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_correction_memory_pattern ON correction_memory(pattern)')

        conn.execute('''
            CREATE TABLE IF NOT EXISTS resolution_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                document_id TEXT NOT NULL,
                vendor TEXT NOT NULL,
                memory_kind TEXT NOT NULL,  -- 'VENDOR' | 'CORRECTION'
                memory_ref TEXT,
                approved INTEGER NOT NULL,
                confidence_delta REAL NOT NULL DEFAULT 0.0,
                timestamp TEXT NOT NULL
            )
        ''')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_resolution_document ON resolution_log(document_id)')

        conn.execute('''
            CREATE TABLE IF NOT EXISTS confidence_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                memory_kind TEXT NOT NULL,
                memory_id INTEGER NOT NULL,
                old_confidence REAL,
                new_confidence REAL NOT NULL,
                delta REAL NOT NULL,
                reason TEXT NOT NULL,  -- 'created' | 'reinforced' | 'rejected' | 'seeded'
                timestamp TEXT NOT NULL
            )
        ''')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_confidence_events_memory ON confidence_events(memory_kind, memory_id)')

        conn.execute('''
            CREATE TABLE IF NOT EXISTS audit_trail (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                document_id TEXT NOT NULL,
                step TEXT NOT NULL,  -- recall | apply | decide | learn
                timestamp TEXT NOT NULL,
                details TEXT NOT NULL,
                meta TEXT
            )
        ''')
        conn.execute('CREATE INDEX IF NOT EXISTS idx_audit_document ON audit_trail(document_id)')

        conn.execute('''
            CREATE TABLE IF NOT EXISTS document_seen (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                vendor TEXT NOT NULL,
                document_number TEXT NOT NULL,
                document_id TEXT,
                first_seen_at TEXT NOT NULL,
                UNIQUE (vendor, document_number)
            )
        ''')


def reset_memory():
    """Delete every row from the memory tables (schema is kept)."""
    init_db()
    with transaction() as conn:
        for table in MEMORY_TABLES:
            conn.execute(f"DELETE FROM {table}")


def memory_counts() -> Dict[str, int]:
    """Row counts per memory table."""
    with get_db() as conn:
        return {
            table: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
            for table in MEMORY_TABLES
        }


def health_check():
    """Check database health."""
    try:
        with get_db() as conn:
            rows = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
            table_names = [row[0] for row in rows]
            return all(table in table_names for table in MEMORY_TABLES)
    except sqlite3.Error:
        return False
