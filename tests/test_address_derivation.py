from __future__ import annotations

import pytest

from recordstore.ledger.address import create_address, derive, is_on_curve, record_seeds
from recordstore.ledger.constants import DEFAULT_STORE_ID_HEX, NAMESPACE_SEED
from recordstore.runtime.errors import InvalidId, InvalidSeed, ValidationError
from recordstore.testing.sigtools import identity

STORE_ID = bytes.fromhex(DEFAULT_STORE_ID_HEX)


def test_derive_is_deterministic() -> None:
    for rid in (0, 1, 2, 999, 12345, 2**64 - 1):
        a = derive(NAMESPACE_SEED, rid, store_id=STORE_ID)
        b = derive(NAMESPACE_SEED, rid, store_id=STORE_ID)
        assert a == b
        assert len(a.address) == 64
        assert 0 <= a.bump <= 255


def test_distinct_ids_derive_distinct_addresses() -> None:
    addrs = {derive(NAMESPACE_SEED, rid, store_id=STORE_ID).address for rid in range(200)}
    assert len(addrs) == 200


def test_namespace_and_store_id_separate_address_spaces() -> None:
    base = derive(NAMESPACE_SEED, 1, store_id=STORE_ID).address
    assert derive(b"task_seed", 1, store_id=STORE_ID).address != base
    assert derive(NAMESPACE_SEED, 1, store_id=bytes(32)).address != base


def test_id_is_encoded_little_endian_fixed_width() -> None:
    seeds = record_seeds(NAMESPACE_SEED, 1)
    assert seeds == [NAMESPACE_SEED, b"\x01" + b"\x00" * 7]


def test_derived_address_is_first_off_curve_bump() -> None:
    seeds = record_seeds(NAMESPACE_SEED, 7)
    d = derive(NAMESPACE_SEED, 7, store_id=STORE_ID)

    addr = create_address(seeds, d.bump, STORE_ID)
    assert addr is not None
    assert addr.hex() == d.address
    assert not is_on_curve(addr)

    # Every higher bump landed on the curve and was skipped.
    for bump in range(255, d.bump, -1):
        assert create_address(seeds, bump, STORE_ID) is None


def test_identities_are_on_curve() -> None:
    for label in ("alice", "bob", "carol"):
        assert is_on_curve(bytes.fromhex(identity(label)))
    # Ed25519 base point.
    assert is_on_curve(bytes.fromhex("58" + "66" * 31))


def test_is_on_curve_rejects_wrong_length() -> None:
    assert not is_on_curve(b"\x00" * 31)


@pytest.mark.parametrize("bad", [-1, 2**64, "1", 1.0, True])
def test_derive_rejects_invalid_ids(bad) -> None:
    with pytest.raises(InvalidId) as e:
        derive(NAMESPACE_SEED, bad, store_id=STORE_ID)
    assert isinstance(e.value, ValidationError)
    assert e.value.reason == "InvalidId"


@pytest.mark.parametrize("seed", [b"", b"x" * 33])
def test_derive_rejects_bad_seed(seed: bytes) -> None:
    with pytest.raises(InvalidSeed):
        derive(seed, 1, store_id=STORE_ID)
