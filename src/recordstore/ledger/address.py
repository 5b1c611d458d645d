# src/recordstore/ledger/address.py
from __future__ import annotations

"""Deterministic record addressing.

A record lives at an address derived from (namespace seed, record id) and the
store deployment id. No directory is needed to find it: anyone who knows the id
can recompute the address.

Derived addresses must never be valid Ed25519 public keys, otherwise someone
holding the matching private key could sign for the record's storage. Digests
that decompress to a curve point are skipped by walking a one-byte bump from
255 down to 0; the first off-curve digest wins. The bump is a derivation
artifact only and is never stored in record data.
"""

import hashlib
from dataclasses import dataclass
from typing import Sequence

from recordstore.ledger.constants import ID_LEN, MAX_BUMP, MAX_SEED_LEN, PDA_MARKER
from recordstore.ledger.types import normalize_record_id
from recordstore.runtime.errors import AddressDerivationError, InvalidSeed

# Curve25519 field prime and the Edwards curve constant d = -121665/121666.
_P = 2**255 - 19
_D = (-121665 * pow(121666, _P - 2, _P)) % _P


@dataclass(frozen=True, slots=True)
class DerivedAddress:
    address: str
    bump: int


def is_on_curve(b: bytes) -> bool:
    """True if `b` decompresses to a point on the Ed25519 curve.

    Decompression solves x^2 = (y^2 - 1) / (d*y^2 + 1); the point exists iff the
    right-hand side is a square mod p. The sign bit does not affect existence.
    """
    if len(b) != 32:
        return False
    y = (int.from_bytes(b, "little") & ((1 << 255) - 1)) % _P
    yy = (y * y) % _P
    u = (yy - 1) % _P
    v = (_D * yy + 1) % _P
    x2 = (u * pow(v, _P - 2, _P)) % _P
    if x2 == 0:
        return True
    return pow(x2, (_P - 1) // 2, _P) == 1


def record_seeds(namespace_seed: bytes, record_id: int) -> list[bytes]:
    seed = bytes(namespace_seed)
    if not seed or len(seed) > MAX_SEED_LEN:
        raise InvalidSeed(len(seed))
    rid = normalize_record_id(record_id)
    return [seed, rid.to_bytes(ID_LEN, "little")]


def create_address(seeds: Sequence[bytes], bump: int, store_id: bytes) -> bytes | None:
    """Single derivation attempt. Returns None when the digest is on the curve."""
    h = hashlib.sha256()
    for s in seeds:
        h.update(s)
    h.update(bytes([int(bump) & 0xFF]))
    h.update(bytes(store_id))
    h.update(PDA_MARKER)
    digest = h.digest()
    if is_on_curve(digest):
        return None
    return digest


def find_address(seeds: Sequence[bytes], store_id: bytes) -> DerivedAddress:
    for bump in range(MAX_BUMP, -1, -1):
        addr = create_address(seeds, bump, store_id)
        if addr is not None:
            return DerivedAddress(address=addr.hex(), bump=bump)
    raise AddressDerivationError("no_viable_bump")


def derive(namespace_seed: bytes, record_id: int, *, store_id: bytes) -> DerivedAddress:
    """Derive the canonical address (and bump) for a record id."""
    return find_address(record_seeds(namespace_seed, record_id), store_id)
