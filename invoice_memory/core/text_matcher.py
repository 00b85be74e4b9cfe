"""
Label-anchored value extraction from raw invoice text.

Grammar, matched case-insensitively:

    match      := LABEL SEPARATOR VALUE
    SEPARATOR  := one or more of ':' or whitespace
    VALUE      := [0-9./-]* DIGIT

A VALUE always ends on a digit, so a sentence-ending period is not part
of it. A VALUE shaped like D.M.YYYY is rewritten as YYYY-MM-DD; anything else is
returned as found.
"""

import re
from typing import Iterable, Optional

CURRENCY_CODES = ("EUR", "USD", "INR", "GBP", "CHF", "AUD", "CAD")

_CURRENCY_RE = re.compile(r"\b(" + "|".join(CURRENCY_CODES) + r")\b", re.IGNORECASE)
_GERMAN_DATE_RE = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$")

_DISCOUNT_PERCENT_FIRST = re.compile(
    r"(\d{1,2}\s*%\s*(skonto|discount)[^.\n]*?\b(\d{1,3})\s*(days|tagen|tage)\b)",
    re.IGNORECASE,
)
_DISCOUNT_DAYS_FIRST = re.compile(
    r"((skonto|discount)[^.\n]*?\b(\d{1,2})\s*%[^.\n]*?\b(\d{1,3})\s*(days|tagen|tage)\b)",
    re.IGNORECASE,
)


class LabelValueMatcher:
    """Finds the value printed after a fixed label."""

    def __init__(self, label: str):
        if not label or not label.strip():
            raise ValueError("label cannot be empty")
        self.label = label
        self._pattern = re.compile(re.escape(label) + r"[:\s]+([\d./-]*\d)", re.IGNORECASE)

    def is_present(self, text: str) -> bool:
        return bool(text) and self.label.lower() in text.lower()

    def extract(self, text: str) -> Optional[str]:
        if not text:
            return None
        match = self._pattern.search(text)
        return normalize_date(match.group(1)) if match else None

    def __repr__(self):
        return f"LabelValueMatcher({self.label!r})"


def normalize_date(value: str) -> str:
    """Rewrite D.M.YYYY as YYYY-MM-DD; leave other values alone."""
    match = _GERMAN_DATE_RE.match(value)
    if not match:
        return value
    day, month, year = match.groups()
    return f"{year}-{month.zfill(2)}-{day.zfill(2)}"


def find_currency_code(text: str) -> Optional[str]:
    """First whole-word currency code from the fixed vocabulary, uppercased."""
    if not text:
        return None
    match = _CURRENCY_RE.search(text)
    return match.group(1).upper() if match else None


def extract_discount_terms(text: str) -> Optional[str]:
    """Early-payment terms such as '2% Skonto innerhalb 10 Tagen', whitespace collapsed."""
    if not text:
        return None
    match = _DISCOUNT_PERCENT_FIRST.search(text) or _DISCOUNT_DAYS_FIRST.search(text)
    if not match:
        return None
    return " ".join(match.group(1).split())


def contains_any(text: str, keywords: Iterable[str]) -> bool:
    """Case-insensitive substring test against any keyword."""
    if not text:
        return False
    lowered = text.lower()
    return any(keyword.lower() in lowered for keyword in keywords)


def count_keyword_hits(text: str, keywords: Iterable[str]) -> int:
    if not text:
        return 0
    lowered = text.lower()
    return sum(1 for keyword in keywords if keyword.lower() in lowered)
