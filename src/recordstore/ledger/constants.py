# src/recordstore/ledger/constants.py
from __future__ import annotations

"""Record store constants.

Defaults for address derivation, record layout bounds and storage deposits.
All of them can be overridden per deployment through StoreConfig, except the
fixed-width layout sizes which are part of the persisted format.
"""

# Address derivation
NAMESPACE_SEED: bytes = b"entity_seed"
MAX_SEED_LEN: int = 32
MAX_BUMP: int = 255
PDA_MARKER: bytes = b"ProgramDerivedAddress"

# Deployment identity mixed into every derived address (32 bytes).
DEFAULT_STORE_ID_HEX: str = "c7a1e4f2d93b5c8e0a6f1b2d4c7e9a3b5d8f0e2c4a6b8d0f1e3c5a7b9d1f3e5a"

# Persisted layout: [id:8][nameLen:2][name][authority:32][active:1]
ID_LEN: int = 8
NAME_PREFIX_LEN: int = 2
IDENTITY_LEN: int = 32
ACTIVE_LEN: int = 1
MIN_FRAME_LEN: int = ID_LEN + NAME_PREFIX_LEN + IDENTITY_LEN + ACTIVE_LEN

# Names are bounded in UTF-8 bytes.
MAX_NAME_LEN: int = 50

# Ids are unsigned 64-bit.
MAX_RECORD_ID: int = 2**64 - 1

# Storage deposit: (overhead + size) * per-byte rate, refunded in full on delete.
STORAGE_OVERHEAD_BYTES: int = 128
DEPOSIT_PER_BYTE: int = 6_960
