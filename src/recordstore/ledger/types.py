"""recordstore.ledger.types

Identity, address and id coercion shared by the deriver, codec and store.

Identities and addresses are 32 raw bytes on the ledger and lowercase hex
strings everywhere else (API payloads, log events, Python values).
"""

from __future__ import annotations

from typing import Any

from recordstore.ledger.constants import IDENTITY_LEN, MAX_RECORD_ID
from recordstore.runtime.errors import InvalidId, InvalidIdentity


def normalize_record_id(v: Any) -> int:
    # bool is an int subclass; disallow it explicitly
    if isinstance(v, bool) or not isinstance(v, int):
        raise InvalidId(v)
    if v < 0 or v > MAX_RECORD_ID:
        raise InvalidId(v)
    return int(v)


def normalize_identity(v: Any, *, field: str = "identity") -> str:
    """Return the canonical lowercase hex form of a 32-byte identity."""
    if isinstance(v, (bytes, bytearray)):
        raw = bytes(v)
    elif isinstance(v, str):
        try:
            raw = bytes.fromhex(v.strip())
        except ValueError as e:
            raise InvalidIdentity(field, v) from e
    else:
        raise InvalidIdentity(field, v)

    if len(raw) != IDENTITY_LEN:
        raise InvalidIdentity(field, v)
    return raw.hex()


def identity_bytes(v: Any, *, field: str = "identity") -> bytes:
    return bytes.fromhex(normalize_identity(v, field=field))


def normalize_address(v: Any) -> str:
    return normalize_identity(v, field="address")
