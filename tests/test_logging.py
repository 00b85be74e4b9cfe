"""
Structured logging helpers.
"""

import logging

from util.logging import logger, sanitize_payload


def test_sanitize_payload_truncates_nested_strings():
    payload = {"raw_text": "x" * 150, "items": ["short", "y" * 120], "count": 3}
    cleaned = sanitize_payload(payload)

    assert cleaned["raw_text"] == "x" * 100 + "..."
    assert cleaned["items"] == ["short", "y" * 100 + "..."]
    assert cleaned["count"] == 3


def test_log_operation_format(caplog):
    with caplog.at_level(logging.INFO, logger="invoice_memory"):
        logger.log_operation("recall", "success", {"document_id": "doc-1"})

    assert "Operation: recall, Status: success, Details: {'document_id': 'doc-1'}" in caplog.text


def test_log_decision_lowercases_outcome(caplog):
    with caplog.at_level(logging.INFO, logger="invoice_memory"):
        logger.log_decision("doc-1", "AUTO_ACCEPT", 1.0, False)

    assert "Operation: decide, Status: auto_accept" in caplog.text


def test_log_stage_failure_is_error(caplog):
    with caplog.at_level(logging.ERROR, logger="invoice_memory"):
        logger.log_stage_failure("learn", "doc-1", RuntimeError("disk full"))

    record = caplog.records[-1]
    assert record.levelno == logging.ERROR
    assert "RuntimeError" in record.getMessage()
