"""
Correction memory repository: global scope, seeding and reinforcement.
"""

import threading

import pytest

from invoice_memory.core import correction_memory
from invoice_memory.core.exceptions import MemoryNotFound
from invoice_memory.core.patterns import FREIGHT_SKU, SKONTO, VAT_INCLUDED, remediation_for


def test_seed_inserts_with_zero_counts():
    assert correction_memory.seed("Parts AG", VAT_INCLUDED) is True

    memory = correction_memory.find_by_pattern("Parts AG", VAT_INCLUDED)
    assert memory.confidence == pytest.approx(0.2)
    assert memory.reinforced_count == 0
    assert memory.usage_count == 0
    assert memory.remediation == remediation_for(VAT_INCLUDED)


def test_seed_is_idempotent():
    correction_memory.seed("Parts AG", VAT_INCLUDED)
    assert correction_memory.seed("Parts AG", VAT_INCLUDED, confidence=0.9) is False
    assert correction_memory.find_by_pattern("Parts AG", VAT_INCLUDED).confidence == pytest.approx(0.2)


def test_seed_default_corrections():
    """Test the default seeds land once however often they are applied."""
    assert correction_memory.seed_default_corrections() == 3
    assert correction_memory.seed_default_corrections() == 0

    patterns = sorted(m.pattern for m in correction_memory.find_candidates("Freight & Co"))
    assert patterns == [FREIGHT_SKU, SKONTO]


def test_global_rows_are_unique():
    """Test a global key cannot be inserted twice."""
    assert correction_memory.seed(None, VAT_INCLUDED) is True
    assert correction_memory.seed(None, VAT_INCLUDED) is False

    first = correction_memory.upsert_on_approval(None, VAT_INCLUDED, remediation_for(VAT_INCLUDED))
    assert first.is_global
    assert first.vendor is None
    assert first.reinforced_count == 1


def test_find_candidates_includes_global_rows():
    correction_memory.seed(None, SKONTO)
    correction_memory.seed("Parts AG", VAT_INCLUDED)
    correction_memory.seed("Freight & Co", FREIGHT_SKU)

    patterns = {m.pattern for m in correction_memory.find_candidates("Parts AG")}
    assert patterns == {SKONTO, VAT_INCLUDED}


def test_find_by_pattern_respects_scope():
    correction_memory.seed(None, SKONTO)

    assert correction_memory.find_by_pattern("Parts AG", SKONTO) is None
    assert correction_memory.find_by_pattern(None, SKONTO).is_global


def test_upsert_then_reinforce():
    created = correction_memory.upsert_on_approval("Parts AG", VAT_INCLUDED, remediation_for(VAT_INCLUDED))
    again = correction_memory.upsert_on_approval("Parts AG", VAT_INCLUDED, remediation_for(VAT_INCLUDED))

    assert again.id == created.id
    assert again.confidence == pytest.approx(0.35)
    assert again.reinforced_count == 2


def test_reinforce_seeded_row():
    correction_memory.seed("Parts AG", VAT_INCLUDED)
    seeded = correction_memory.find_by_pattern("Parts AG", VAT_INCLUDED)

    reinforced = correction_memory.reinforce(seeded.id)
    assert reinforced.confidence == pytest.approx(0.25)
    assert reinforced.reinforced_count == 1
    assert reinforced.last_used_at is not None


def test_reject_and_usage():
    created = correction_memory.upsert_on_approval("Parts AG", VAT_INCLUDED, remediation_for(VAT_INCLUDED))

    rejected = correction_memory.reject(created.id)
    assert rejected.rejected_count == 1
    assert rejected.confidence == pytest.approx(created.confidence)

    used = correction_memory.record_usage(created.id)
    assert used.usage_count == 1


def test_missing_ids_raise():
    with pytest.raises(MemoryNotFound):
        correction_memory.reinforce(777)
    with pytest.raises(MemoryNotFound):
        correction_memory.reject(777)
    with pytest.raises(MemoryNotFound):
        correction_memory.record_usage(777)


def test_concurrent_reinforcement_of_one_row():
    """Test parallel reinforcements are serialized."""
    correction_memory.seed("Parts AG", VAT_INCLUDED)
    memory_id = correction_memory.find_by_pattern("Parts AG", VAT_INCLUDED).id
    workers = 6

    threads = [threading.Thread(target=correction_memory.reinforce, args=(memory_id,)) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    memory = correction_memory.find_by_id(memory_id)
    assert memory.reinforced_count == workers
    assert memory.confidence == pytest.approx(0.2 + 0.05 * workers)
