#!/usr/bin/env python3
"""
Run one invoice through the pipeline from the command line, optionally
followed by a reviewer's feedback.

The document file holds the same JSON the /documents/process endpoint accepts.
The feedback file holds {"corrections": [...], "final_decision": "approved"}.
"""

import argparse
import json
import sys
from pathlib import Path

# Load environment variables from .env file first
import dotenv
dotenv.load_dotenv()

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from invoice_memory.api.schemas import DocumentRequest, FeedbackRequest
from invoice_memory.core.db import init_db
from invoice_memory.core.exceptions import InvoiceMemoryError
from invoice_memory.engine import run_pipeline, submit_feedback


def load_json(path: str):
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def main():
    parser = argparse.ArgumentParser(
        description="Process an invoice through Recall, Apply and Decide",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s invoice.json                   # Propose corrections and decide
  %(prog)s invoice.json feedback.json     # Also learn from reviewer feedback
        """
    )

    parser.add_argument("document", help="Path to the document JSON file")
    parser.add_argument("feedback", nargs="?", help="Path to a feedback JSON file")
    parser.add_argument(
        "--no-audit",
        action="store_true",
        help="Do not persist audit entries"
    )

    args = parser.parse_args()

    try:
        init_db()
        request = DocumentRequest.model_validate(load_json(args.document))
        document = request.to_document()

        output = {"pipeline": run_pipeline(document, persist_audit=not args.no_audit).to_dict()}

        if args.feedback:
            feedback_data = load_json(args.feedback)
            feedback_data["document"] = request.model_dump()
            feedback = FeedbackRequest.model_validate(feedback_data).to_feedback()
            output["learn"] = submit_feedback(document, feedback, persist_audit=not args.no_audit).to_dict()

        print(json.dumps(output, indent=2, default=str))
        return 0

    except (OSError, ValueError) as e:
        print(f"ERROR: Invalid input: {e}")
        return 1
    except InvoiceMemoryError as e:
        print(f"ERROR: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
