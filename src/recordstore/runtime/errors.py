from __future__ import annotations

"""Error taxonomy for the record store.

Every error carries a stable (code, reason) pair plus optional details so the
API layer can surface it verbatim. Errors abort the operation they were raised
from; the ledger transaction around it rolls back, so nothing is partially
written and no deposit is partially moved.
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class StoreError(Exception):
    """Canonical error type for record store failures."""

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


# --- validation ---


class ValidationError(StoreError):
    pass


class NameTooLong(ValidationError):
    def __init__(self, length: int, limit: int) -> None:
        super().__init__("validation_error", "NameTooLong", {"length": int(length), "max": int(limit)})


class InvalidId(ValidationError):
    def __init__(self, record_id: Any) -> None:
        super().__init__("validation_error", "InvalidId", {"id": repr(record_id)})


class InvalidIdentity(ValidationError):
    def __init__(self, field: str, value: Any) -> None:
        super().__init__("validation_error", "InvalidIdentity", {"field": field, "value": repr(value)})


class InvalidSeed(ValidationError):
    def __init__(self, length: int) -> None:
        super().__init__("validation_error", "InvalidSeed", {"length": int(length)})


# --- authorization ---


class AuthorizationError(StoreError):
    pass


class UnauthorizedAction(AuthorizationError):
    def __init__(self, address: str, caller: str) -> None:
        super().__init__("authorization_error", "UnauthorizedAction", {"address": address, "caller": caller})


class InvalidSignature(AuthorizationError):
    def __init__(self, signer: str, why: str) -> None:
        super().__init__("authorization_error", "InvalidSignature", {"signer": signer, "why": why})


# --- lookup ---


class NotFoundError(StoreError):
    pass


class NotFound(NotFoundError):
    def __init__(self, address: str) -> None:
        super().__init__("not_found", "NotFound", {"address": address})


class DuplicateError(StoreError):
    pass


class AlreadyExists(DuplicateError):
    def __init__(self, address: str) -> None:
        super().__init__("duplicate", "AlreadyExists", {"address": address})


# --- storage ---


class CorruptRecord(StoreError):
    def __init__(self, why: str, **details: Any) -> None:
        super().__init__("corrupt_record", why, dict(details) or None)


class AddressDerivationError(StoreError):
    def __init__(self, why: str) -> None:
        super().__init__("address_derivation", why, None)


class LedgerError(StoreError):
    pass


class InsufficientFunds(LedgerError):
    def __init__(self, payer: str, need: int, have: int) -> None:
        super().__init__("ledger_error", "InsufficientFunds", {"payer": payer, "need": int(need), "have": int(have)})


class StorageInUse(LedgerError):
    def __init__(self, address: str) -> None:
        super().__init__("ledger_error", "StorageInUse", {"address": address})


class StorageNotAllocated(LedgerError):
    def __init__(self, address: str) -> None:
        super().__init__("ledger_error", "StorageNotAllocated", {"address": address})
