"""
In-memory ledger for tests and local development.

Invariants:
    - All data is lost on process exit
    - Same atomicity and per-address serialization as SqliteLedger
    - Thread-safe for concurrent access

Changes made inside a transaction are staged and applied under the balance
lock on commit, so a failed operation never leaves a visible trace.

Addresses are serialized through a fixed pool of striped locks. Two
addresses may share a stripe, which only makes them wait on each other.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

from recordstore.ledger.base import Ledger, LedgerTxn, StorageOverflow, next_nonce_or_raise
from recordstore.ledger.types import normalize_identity
from recordstore.runtime.errors import (
    InsufficientFunds,
    InvalidSignature,
    StorageInUse,
    StorageNotAllocated,
)

logger = logging.getLogger(__name__)

_UNSET = object()

LOCK_STRIPES = 64


@dataclass
class _Slot:
    data: bytes
    deposit: int


class _MemoryTxn(LedgerTxn):
    def __init__(self, ledger: "MemoryLedger", address: str) -> None:
        self.address = address
        self._ledger = ledger
        self._slot: object = _UNSET
        self._deltas: Dict[str, int] = {}
        self._nonces: Dict[str, int] = {}

    def _current(self) -> Optional[_Slot]:
        if self._slot is _UNSET:
            return self._ledger._slots.get(self.address)
        return self._slot  # type: ignore[return-value]

    def _staged_balance(self, identity: str) -> int:
        return self._ledger.balance(identity) + self._deltas.get(identity, 0)

    def read(self) -> Optional[bytes]:
        cur = self._current()
        return None if cur is None else cur.data

    def allocate(self, size: int, payer: str) -> int:
        payer = normalize_identity(payer, field="payer")
        if self._current() is not None:
            raise StorageInUse(self.address)
        deposit = self._ledger.deposit_for(size)
        have = self._staged_balance(payer)
        if have < deposit:
            raise InsufficientFunds(payer, deposit, have)
        self._deltas[payer] = self._deltas.get(payer, 0) - deposit
        self._slot = _Slot(data=bytes(int(size)), deposit=deposit)
        return deposit

    def write(self, data: bytes) -> None:
        cur = self._current()
        if cur is None:
            raise StorageNotAllocated(self.address)
        data = bytes(data)
        if len(data) > len(cur.data):
            raise StorageOverflow(self.address, len(data), len(cur.data))
        self._slot = _Slot(data=data + cur.data[len(data) :], deposit=cur.deposit)

    def free(self, refund_recipient: str) -> int:
        recipient = normalize_identity(refund_recipient, field="refund_recipient")
        cur = self._current()
        if cur is None:
            raise StorageNotAllocated(self.address)
        self._deltas[recipient] = self._deltas.get(recipient, 0) + cur.deposit
        self._slot = None
        return cur.deposit

    def consume_nonce(self, identity: str, nonce: int) -> int:
        ident = normalize_identity(identity, field="signer")
        last = self._nonces.get(ident)
        if last is None:
            last = self._ledger.nonce(ident)
        self._nonces[ident] = next_nonce_or_raise(ident, last, nonce)
        return self._nonces[ident]

    def _commit(self) -> None:
        led = self._ledger
        with led._bal_lock:
            # Another address's transaction may have used the same nonce.
            for ident, n in self._nonces.items():
                if led._nonces.get(ident, 0) != n - 1:
                    raise InvalidSignature(ident, "stale_nonce")
            for ident, delta in self._deltas.items():
                have = led._balances.get(ident, 0)
                if have + delta < 0:
                    raise InsufficientFunds(ident, -delta, have)
            led._nonces.update(self._nonces)
            for ident, delta in self._deltas.items():
                led._balances[ident] = led._balances.get(ident, 0) + delta
            if self._slot is None:
                led._slots.pop(self.address, None)
            elif self._slot is not _UNSET:
                led._slots[self.address] = self._slot  # type: ignore[assignment]


class MemoryLedger(Ledger):
    """Dict-backed Ledger implementation."""

    def __init__(self, **kwargs: int) -> None:
        super().__init__(**kwargs)
        self._slots: Dict[str, _Slot] = {}
        self._balances: Dict[str, int] = {}
        self._nonces: Dict[str, int] = {}
        self._bal_lock = threading.Lock()
        self._addr_locks: List[threading.Lock] = [threading.Lock() for _ in range(LOCK_STRIPES)]

    def _lock_for(self, address: str) -> threading.Lock:
        h = hashlib.sha256(str(address).encode("utf-8")).digest()
        return self._addr_locks[int.from_bytes(h[:4], "little") % LOCK_STRIPES]

    @contextmanager
    def transaction(self, address: str) -> Iterator[LedgerTxn]:
        with self._lock_for(address):
            txn = _MemoryTxn(self, address)
            yield txn
            txn._commit()

    def read(self, address: str) -> Optional[bytes]:
        slot = self._slots.get(address)
        return None if slot is None else slot.data

    def balance(self, identity: str) -> int:
        ident = normalize_identity(identity)
        with self._bal_lock:
            return int(self._balances.get(ident, 0))

    def fund(self, identity: str, amount: int) -> int:
        ident = normalize_identity(identity)
        if int(amount) < 0:
            raise ValueError("fund amount must be >= 0")
        with self._bal_lock:
            new = self._balances.get(ident, 0) + int(amount)
            self._balances[ident] = new
        logger.debug("funded %s with %d (balance=%d)", ident, int(amount), new)
        return new

    def nonce(self, identity: str) -> int:
        ident = normalize_identity(identity, field="signer")
        with self._bal_lock:
            return int(self._nonces.get(ident, 0))
