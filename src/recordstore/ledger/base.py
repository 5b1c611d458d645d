"""
Ledger collaborator interface.

The record store keeps no state of its own. Storage bytes, deposits,
balances and signer nonces all live in a Ledger, which the store drives
through one transaction per operation:

    with ledger.transaction(address) as txn:
        txn.consume_nonce(signer, nonce)  # replay guard for signed ops
        raw = txn.read()
        ...
        txn.allocate(size, payer)   # charge deposit, reserve storage
        txn.write(data)
        txn.free(refund_recipient)  # release storage, refund deposit

Invariants:
    - A transaction commits only on clean exit; any exception rolls back
      every storage, balance and nonce change made inside it.
    - At most one transaction per address is in flight at a time.
    - Transactions on different addresses are independent.
    - free() refunds exactly the deposit charged by the matching allocate().
    - Identities are keyed by their canonical lowercase hex form, whatever
      case the caller passes in.
    - A signer's nonce only ever advances by one per committed consume_nonce().

How to change safely:
    - Backends must keep identical deposit arithmetic (deposit_for) and
      identical nonce rules (next_nonce_or_raise).
    - Add new methods with default implementations.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Optional

from recordstore.ledger.constants import DEPOSIT_PER_BYTE, STORAGE_OVERHEAD_BYTES
from recordstore.runtime.errors import InvalidSignature, LedgerError


class StorageOverflow(LedgerError):
    def __init__(self, address: str, size: int, allocated: int) -> None:
        super().__init__("ledger_error", "StorageOverflow", {"address": address, "size": size, "allocated": allocated})


def next_nonce_or_raise(identity: str, last: int, nonce: int) -> int:
    """Accept `nonce` only if it is exactly last + 1."""
    n = int(nonce)
    if n <= int(last):
        raise InvalidSignature(identity, "stale_nonce")
    if n != int(last) + 1:
        raise InvalidSignature(identity, "nonce_gap")
    return n


class LedgerTxn(ABC):
    """Mutations scoped to a single address inside one atomic transaction."""

    address: str

    @abstractmethod
    def read(self) -> Optional[bytes]:
        """Current bytes at the address, or None when unallocated."""

    @abstractmethod
    def allocate(self, size: int, payer: str) -> int:
        """Reserve `size` zeroed bytes, charging the deposit to `payer`.

        Raises StorageInUse if the address is allocated and
        InsufficientFunds if `payer` cannot cover the deposit.
        Returns the deposit charged.
        """

    @abstractmethod
    def write(self, data: bytes) -> None:
        """Overwrite the allocated bytes from offset 0."""

    @abstractmethod
    def free(self, refund_recipient: str) -> int:
        """Release the storage and credit its full deposit to `refund_recipient`."""

    @abstractmethod
    def consume_nonce(self, identity: str, nonce: int) -> int:
        """Advance `identity`'s nonce to `nonce`.

        Raises InvalidSignature("stale_nonce") for a nonce already used and
        InvalidSignature("nonce_gap") for one that skips ahead.
        """


class Ledger(ABC):
    """Storage + funds backend shared by every record."""

    def __init__(
        self,
        *,
        deposit_per_byte: int = DEPOSIT_PER_BYTE,
        storage_overhead_bytes: int = STORAGE_OVERHEAD_BYTES,
    ) -> None:
        if int(deposit_per_byte) < 0 or int(storage_overhead_bytes) < 0:
            raise ValueError("deposit parameters must be >= 0")
        self.deposit_per_byte = int(deposit_per_byte)
        self.storage_overhead_bytes = int(storage_overhead_bytes)

    def deposit_for(self, size: int) -> int:
        return (self.storage_overhead_bytes + int(size)) * self.deposit_per_byte

    @abstractmethod
    def transaction(self, address: str) -> AbstractContextManager[LedgerTxn]:
        ...

    @abstractmethod
    def read(self, address: str) -> Optional[bytes]:
        ...

    @abstractmethod
    def balance(self, identity: str) -> int:
        ...

    @abstractmethod
    def fund(self, identity: str, amount: int) -> int:
        """Credit `amount` to `identity` (faucet / bootstrap). Returns new balance."""

    @abstractmethod
    def nonce(self, identity: str) -> int:
        """Last nonce consumed by `identity` (0 if it never signed)."""

    def close(self) -> None:
        pass
