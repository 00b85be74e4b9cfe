"""
Runtime configuration for the invoice correction memory.
All values come from the environment; paths and flags are read at call time so tests can repoint them.
"""

import os
from pathlib import Path

DEFAULT_DB_PATH = "./data/invoice_memory.db"

# SQLite busy timeout; concurrent learners wait on the write lock instead of failing
DB_BUSY_TIMEOUT_SEC = float(os.getenv("DB_BUSY_TIMEOUT_SEC", "30"))

# Apply-stage constants
DEFAULT_TAX_RATE = float(os.getenv("DEFAULT_TAX_RATE", "0.19"))
FREIGHT_SKU_CODE = os.getenv("FREIGHT_SKU_CODE", "FREIGHT")
DEFAULT_DISCOUNT_TERMS = os.getenv("DEFAULT_DISCOUNT_TERMS", "2% Skonto within 10 days")
CURRENCY_RECOVERY_CONFIDENCE = float(os.getenv("CURRENCY_RECOVERY_CONFIDENCE", "0.25"))
REQUIRED_FIELD_PLACEHOLDER = "[REQUIRED_HUMAN_VALIDATION]"

# Learn-stage constants
INITIAL_MEMORY_CONFIDENCE = float(os.getenv("INITIAL_MEMORY_CONFIDENCE", "0.3"))
SEED_CONFIDENCE = float(os.getenv("SEED_CONFIDENCE", "0.2"))
APPROVED_CONFIDENCE_DELTA = float(os.getenv("APPROVED_CONFIDENCE_DELTA", "0.1"))
REJECTED_CONFIDENCE_DELTA = float(os.getenv("REJECTED_CONFIDENCE_DELTA", "-0.2"))

SEED_DEFAULTS_ON_STARTUP = os.getenv("SEED_DEFAULTS_ON_STARTUP", "false").lower() == "true"

# (vendor, pattern) pairs seeded into correction memory; vendor None means global
DEFAULT_CORRECTION_SEEDS = [
    ("Parts AG", "VAT_INCLUDED"),
    ("Freight & Co", "FREIGHT_SKU"),
    ("Freight & Co", "SKONTO"),
]

# Version string
VERSION = "1.0.0"


def get_db_path() -> str:
    """Get the SQLite database path."""
    return os.getenv("DB_PATH", DEFAULT_DB_PATH)


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def ensure_db_directory():
    """Ensure the database directory exists."""
    Path(get_db_path()).parent.mkdir(parents=True, exist_ok=True)


def get_required_fields():
    """Fields whose absence always needs human input (comma separated in REQUIRED_FIELDS)."""
    raw = os.getenv("REQUIRED_FIELDS", "service_date")
    return [f.strip() for f in raw.split(",") if f.strip()]


def validate_config():
    """Validate configuration and return any issues."""
    issues = []

    if not 0 <= DEFAULT_TAX_RATE < 1:
        issues.append(f"DEFAULT_TAX_RATE must be in [0, 1): {DEFAULT_TAX_RATE}")

    for name, value in (
        ("INITIAL_MEMORY_CONFIDENCE", INITIAL_MEMORY_CONFIDENCE),
        ("SEED_CONFIDENCE", SEED_CONFIDENCE),
        ("CURRENCY_RECOVERY_CONFIDENCE", CURRENCY_RECOVERY_CONFIDENCE),
    ):
        if not 0 <= value <= 1:
            issues.append(f"{name} must be in [0, 1]: {value}")

    if APPROVED_CONFIDENCE_DELTA < 0:
        issues.append("APPROVED_CONFIDENCE_DELTA must be >= 0")

    if REJECTED_CONFIDENCE_DELTA > 0:
        issues.append("REJECTED_CONFIDENCE_DELTA must be <= 0")

    if DB_BUSY_TIMEOUT_SEC <= 0:
        issues.append("DB_BUSY_TIMEOUT_SEC must be > 0")

    if not FREIGHT_SKU_CODE.strip():
        issues.append("FREIGHT_SKU_CODE cannot be empty")

    return issues
