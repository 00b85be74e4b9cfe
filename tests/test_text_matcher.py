"""
Label-anchored extraction, currency recovery and discount terms.
"""

import pytest

from invoice_memory.core.text_matcher import (
    LabelValueMatcher,
    contains_any,
    count_keyword_hits,
    extract_discount_terms,
    find_currency_code,
    normalize_date,
)


def test_label_value_with_colon():
    text = "Rechnung INV-1\nLeistungsdatum: 15.01.2024\nGesamt 2975,00"
    assert LabelValueMatcher("Leistungsdatum").extract(text) == "2024-01-15"


def test_label_value_case_insensitive_whitespace_separator():
    assert LabelValueMatcher("Leistungsdatum").extract("LEISTUNGSDATUM   3.2.2024") == "2024-02-03"


def test_label_value_iso_date_returned_verbatim():
    assert LabelValueMatcher("Service date").extract("Service date: 2024-01-15") == "2024-01-15"


def test_label_value_numeric_token():
    assert LabelValueMatcher("Bestellnummer").extract("Bestellnummer: 4711") == "4711"


def test_label_absent_or_no_value():
    assert LabelValueMatcher("Leistungsdatum").extract("Nothing to see") is None
    assert LabelValueMatcher("Leistungsdatum").extract("Leistungsdatum: siehe Anlage") is None


def test_sentence_ending_period_is_not_part_of_value():
    assert LabelValueMatcher("Leistungsdatum").extract("Leistungsdatum: 15.01.2024.") == "2024-01-15"
    assert LabelValueMatcher("Netto").extract("Netto: 100.00.") == "100.00"


def test_label_with_regex_characters_is_escaped():
    matcher = LabelValueMatcher("PO No.(ext)")
    assert matcher.extract("PO No.(ext): 12/34") == "12/34"


def test_empty_label_rejected():
    with pytest.raises(ValueError):
        LabelValueMatcher("  ")


def test_is_present():
    matcher = LabelValueMatcher("Leistungsdatum")
    assert matcher.is_present("leistungsdatum: 01.01.2024")
    assert not matcher.is_present("")


@pytest.mark.parametrize("value,expected", [
    ("1.2.2024", "2024-02-01"),
    ("20.01.2024", "2024-01-20"),
    ("2024-01-20", "2024-01-20"),
    ("12.5", "12.5"),
])
def test_normalize_date(value, expected):
    assert normalize_date(value) == expected


def test_find_currency_code_whole_word_uppercased():
    assert find_currency_code("Total 100 eur incl. VAT") == "EUR"
    assert find_currency_code("Betrag in CHF") == "CHF"


def test_find_currency_code_ignores_partial_words():
    assert find_currency_code("EUROPEAN supplier") is None
    assert find_currency_code("") is None


def test_extract_discount_terms_percent_first():
    text = "Zahlbedingungen: 2% Skonto innerhalb   10 Tagen. Danach netto."
    assert extract_discount_terms(text) == "2% Skonto innerhalb 10 Tagen"


def test_extract_discount_terms_english():
    assert extract_discount_terms("Pay with 3 % discount within 14 days") == "3 % discount within 14 days"


def test_extract_discount_terms_keyword_first():
    assert extract_discount_terms("Skonto: 2% bei Zahlung in 7 Tage") == "Skonto: 2% bei Zahlung in 7 Tage"


def test_extract_discount_terms_absent():
    assert extract_discount_terms("Zahlbar sofort ohne Abzug") is None


def test_contains_any_and_hits():
    text = "Prices incl. MwSt"
    assert contains_any(text, ["mwst"])
    assert not contains_any(text, ["freight"])
    assert count_keyword_hits(text, ["vat", "mwst", "inkl", "incl", "included", "prices incl"]) == 3
