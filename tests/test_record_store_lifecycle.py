from __future__ import annotations

import pytest

from recordstore.ledger.constants import MAX_NAME_LEN
from recordstore.ledger.memory import MemoryLedger
from recordstore.runtime.codec import encoded_size
from recordstore.runtime.errors import AlreadyExists, InsufficientFunds, NameTooLong, NotFound
from recordstore.runtime.record_store import RecordStore
from recordstore.testing.sigtools import identity

ALICE = identity("alice")
BOB = identity("bob")
FUNDS = 10**9


def _store() -> RecordStore:
    ledger = MemoryLedger()
    ledger.fund(ALICE, FUNDS)
    ledger.fund(BOB, FUNDS)
    return RecordStore(ledger)


def test_create_update_delete_scenario() -> None:
    store = _store()
    addr = store.address_for(1).address

    store.create(1, "Test Entity", ALICE, ALICE)
    rec = store.fetch(addr)
    assert rec.id == 1
    assert rec.name == "Test Entity"
    assert rec.authority == ALICE
    assert rec.active is True

    store.update_status(addr, False, ALICE)
    assert store.fetch(addr).active is False

    store.update_status(addr, True, ALICE)
    assert store.fetch(addr).active is True

    store.delete(addr, ALICE, ALICE)
    with pytest.raises(NotFound):
        store.fetch(addr)


def test_create_charges_deposit_sized_to_encoding() -> None:
    store = _store()
    store.create(1, "Test Entity", ALICE, BOB)

    deposit = store.ledger.deposit_for(encoded_size("Test Entity"))
    assert deposit == (128 + 54) * 6960
    assert store.ledger.balance(BOB) == FUNDS - deposit
    # Creator is the authority but did not pay.
    assert store.ledger.balance(ALICE) == FUNDS
    assert store.fetch_by_id(1).authority == ALICE


def test_create_rejects_existing_record() -> None:
    store = _store()
    store.create(1, "first", ALICE, ALICE)
    before = store.ledger.balance(BOB)

    with pytest.raises(AlreadyExists):
        store.create(1, "second", BOB, BOB)

    assert store.fetch_by_id(1).name == "first"
    assert store.fetch_by_id(1).authority == ALICE
    assert store.ledger.balance(BOB) == before


def test_name_length_boundary() -> None:
    store = _store()
    store.create(10, "A" * MAX_NAME_LEN, ALICE, ALICE)
    assert store.fetch_by_id(10).name == "A" * MAX_NAME_LEN

    with pytest.raises(NameTooLong):
        store.create(11, "A" * (MAX_NAME_LEN + 1), ALICE, ALICE)


def test_name_too_long_touches_nothing() -> None:
    store = _store()
    addr = store.address_for(999).address

    with pytest.raises(NameTooLong) as e:
        store.create(999, "A" * 100, ALICE, ALICE)

    assert e.value.reason == "NameTooLong"
    assert e.value.details == {"length": 100, "max": MAX_NAME_LEN}
    assert store.ledger.read(addr) is None
    assert store.ledger.balance(ALICE) == FUNDS


def test_name_bound_counts_utf8_bytes() -> None:
    store = _store()
    store.create(20, "é" * (MAX_NAME_LEN // 2), ALICE, ALICE)
    with pytest.raises(NameTooLong):
        store.create(21, "é" * (MAX_NAME_LEN // 2 + 1), ALICE, ALICE)


def test_update_status_is_idempotent() -> None:
    store = _store()
    addr = store.address_for(3).address
    store.create(3, "toggle", ALICE, ALICE)

    assert store.update_status(addr, False, ALICE).active is False
    assert store.update_status(addr, False, ALICE).active is False
    assert store.fetch(addr).active is False


def test_delete_refunds_exact_deposit_to_recipient() -> None:
    store = _store()
    carol = identity("carol")
    addr = store.address_for(4).address
    store.create(4, "refund me", ALICE, ALICE)
    deposit = store.ledger.deposit_for(encoded_size("refund me"))

    refunded = store.delete(addr, ALICE, carol)

    assert refunded == deposit
    assert store.ledger.balance(carol) == deposit
    assert store.ledger.balance(ALICE) == FUNDS - deposit
    assert store.ledger.read(addr) is None


def test_delete_refund_defaults_to_caller() -> None:
    store = _store()
    addr = store.address_for(5).address
    store.create(5, "x", ALICE, ALICE)
    store.delete(addr, ALICE)
    assert store.ledger.balance(ALICE) == FUNDS


def test_missing_targets_fail_not_found() -> None:
    store = _store()
    addr = store.address_for(12345).address

    with pytest.raises(NotFound):
        store.update_status(addr, True, ALICE)
    with pytest.raises(NotFound):
        store.delete(addr, ALICE, ALICE)
    with pytest.raises(NotFound):
        store.fetch(addr)


def test_id_reuse_after_delete_is_a_fresh_record() -> None:
    store = _store()
    addr = store.address_for(6).address
    store.create(6, "old", ALICE, ALICE)
    store.update_status(addr, False, ALICE)
    store.delete(addr, ALICE, ALICE)

    rec = store.create(6, "new", BOB, BOB)
    assert rec.authority == BOB
    assert rec.active is True
    assert store.fetch(addr) == rec


def test_insufficient_funds_leaves_address_absent() -> None:
    ledger = MemoryLedger()
    store = RecordStore(ledger)
    poor = identity("poor")
    ledger.fund(poor, 10)

    with pytest.raises(InsufficientFunds):
        store.create(7, "broke", poor, poor)

    assert ledger.read(store.address_for(7).address) is None
    assert ledger.balance(poor) == 10


def test_custom_name_bound() -> None:
    store = RecordStore(MemoryLedger(deposit_per_byte=0), max_name_len=4)
    store.create(1, "abcd", ALICE, ALICE)
    with pytest.raises(NameTooLong):
        store.create(2, "abcde", ALICE, ALICE)


def test_operations_emit_structured_events(caplog: pytest.LogCaptureFixture) -> None:
    import json
    import logging

    store = _store()
    addr = store.address_for(8).address
    with caplog.at_level(logging.INFO, logger="recordstore.store"):
        store.create(8, "logged", ALICE, ALICE)
        store.update_status(addr, False, ALICE)
        store.delete(addr, ALICE, ALICE)

    events = [json.loads(r.getMessage()) for r in caplog.records if r.name == "recordstore.store"]
    assert [e["event"] for e in events] == ["record_created", "record_status_updated", "record_deleted"]
    assert events[0]["address"] == addr
    assert events[0]["name"] == "logged"
    assert events[1]["active"] is False
    assert events[2]["refunded"] == store.ledger.deposit_for(encoded_size("logged"))
