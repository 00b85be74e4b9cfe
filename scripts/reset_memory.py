#!/usr/bin/env python3
"""
Clear every memory table: vendor mappings, correction patterns, resolutions,
confidence history, audit trail and the duplicate guard.
"""

import argparse
import sys
from pathlib import Path

# Load environment variables from .env file first
import dotenv
dotenv.load_dotenv()

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from invoice_memory.core.correction_memory import seed_default_corrections
from invoice_memory.core.db import memory_counts, reset_memory


def main():
    parser = argparse.ArgumentParser(
        description="Reset the invoice correction memory store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                # Clear all memory
  %(prog)s --seed         # Clear, then seed the default correction patterns

Environment variables:
- DB_PATH=./data/invoice_memory.db (database to reset)
        """
    )

    parser.add_argument(
        "--seed",
        action="store_true",
        help="Seed the default correction patterns after clearing"
    )

    args = parser.parse_args()

    try:
        reset_memory()
        print("Memory cleared")

        if args.seed:
            inserted = seed_default_corrections()
            print(f"Seeded {inserted} correction patterns")

        for table, count in memory_counts().items():
            print(f"  {table}: {count}")

        return 0

    except Exception as e:
        print(f"ERROR: Reset failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
