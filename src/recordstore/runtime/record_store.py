# src/recordstore/runtime/record_store.py
from __future__ import annotations

"""recordstore.runtime.record_store

Create / update-status / delete semantics for keyed records.

Key invariants:
  - one record per (namespace, id); it lives at derive(namespace, id)
  - authority is fixed at create time and never reassigned
  - only the authority may update or delete a record
  - a record is fully present (allocated + written) or fully absent
  - delete refunds the full storage deposit to the chosen recipient

Every operation runs inside a single ledger transaction scoped to the target
address. Validation and authorization failures raise before any mutation, and
anything raised later rolls the transaction back, so failed calls are no-ops
and safe to retry.

Callers hand in verified identities (see op_envelope.verify_envelope); this
module never looks at signatures. Signed callers also pass the nonces their
signatures cover; they are consumed in the operation's own transaction, so a
request that took effect can never be applied again and one that failed
leaves the signer's nonce where it was.
"""

import logging
from typing import Mapping, Optional

from recordstore.ledger.address import DerivedAddress, derive
from recordstore.ledger.base import Ledger, LedgerTxn
from recordstore.ledger.constants import DEFAULT_STORE_ID_HEX, MAX_NAME_LEN, NAMESPACE_SEED
from recordstore.ledger.types import normalize_address, normalize_identity, normalize_record_id
from recordstore.runtime import codec
from recordstore.runtime.codec import Record
from recordstore.runtime.errors import AlreadyExists, NameTooLong, NotFound, UnauthorizedAction
from recordstore.util.log import log_event

logger = logging.getLogger("recordstore.store")


class RecordStore:
    def __init__(
        self,
        ledger: Ledger,
        *,
        namespace_seed: bytes = NAMESPACE_SEED,
        store_id: bytes = bytes.fromhex(DEFAULT_STORE_ID_HEX),
        max_name_len: int = MAX_NAME_LEN,
    ) -> None:
        if int(max_name_len) < 0 or int(max_name_len) > 0xFFFF:
            raise ValueError("max_name_len must fit the 2-byte length prefix")
        self.ledger = ledger
        self.namespace_seed = bytes(namespace_seed)
        self.store_id = bytes(store_id)
        self.max_name_len = int(max_name_len)

    def address_for(self, record_id: int) -> DerivedAddress:
        return derive(self.namespace_seed, record_id, store_id=self.store_id)

    def _decode(self, raw: bytes) -> Record:
        return codec.decode(raw, max_name_len=self.max_name_len)

    def _load_owned(self, txn: LedgerTxn, caller: str) -> Record:
        raw = txn.read()
        if raw is None:
            raise NotFound(txn.address)
        rec = self._decode(raw)
        if rec.authority != caller:
            raise UnauthorizedAction(txn.address, caller)
        return rec

    @staticmethod
    def _consume_nonces(txn: LedgerTxn, nonces: Optional[Mapping[str, int]]) -> None:
        for ident, n in (nonces or {}).items():
            txn.consume_nonce(ident, n)

    # ---- operations ----

    def create(
        self,
        record_id: int,
        name: str,
        creator: str,
        funding_actor: Optional[str] = None,
        *,
        nonces: Optional[Mapping[str, int]] = None,
    ) -> Record:
        rid = normalize_record_id(record_id)
        creator = normalize_identity(creator, field="creator")
        payer = normalize_identity(funding_actor if funding_actor is not None else creator, field="funding_actor")

        name = str(name)
        name_len = len(name.encode("utf-8"))
        if name_len > self.max_name_len:
            raise NameTooLong(name_len, self.max_name_len)

        address = self.address_for(rid).address
        rec = Record(id=rid, name=name, authority=creator, active=True)
        data = codec.encode(rec, max_name_len=self.max_name_len)

        with self.ledger.transaction(address) as txn:
            self._consume_nonces(txn, nonces)
            if txn.read() is not None:
                raise AlreadyExists(address)
            deposit = txn.allocate(len(data), payer)
            txn.write(data)

        log_event(
            logger,
            "record_created",
            id=rid,
            name=name,
            address=address,
            authority=creator,
            payer=payer,
            deposit=deposit,
        )
        return rec

    def update_status(
        self,
        address: str,
        new_active: bool,
        caller: str,
        *,
        nonces: Optional[Mapping[str, int]] = None,
    ) -> Record:
        address = normalize_address(address)
        caller = normalize_identity(caller, field="caller")

        with self.ledger.transaction(address) as txn:
            self._consume_nonces(txn, nonces)
            rec = self._load_owned(txn, caller)
            updated = Record(id=rec.id, name=rec.name, authority=rec.authority, active=bool(new_active))
            txn.write(codec.encode(updated, max_name_len=self.max_name_len))

        log_event(logger, "record_status_updated", id=updated.id, address=address, active=updated.active)
        return updated

    def delete(
        self,
        address: str,
        caller: str,
        refund_recipient: Optional[str] = None,
        *,
        nonces: Optional[Mapping[str, int]] = None,
    ) -> int:
        """Remove the record and return the refunded deposit.

        The refund goes to `refund_recipient`, or to the caller when omitted.
        """
        address = normalize_address(address)
        caller = normalize_identity(caller, field="caller")
        recipient = normalize_identity(
            refund_recipient if refund_recipient is not None else caller,
            field="refund_recipient",
        )

        with self.ledger.transaction(address) as txn:
            self._consume_nonces(txn, nonces)
            rec = self._load_owned(txn, caller)
            refunded = txn.free(recipient)

        log_event(logger, "record_deleted", id=rec.id, address=address, by=caller, refund_recipient=recipient, refunded=refunded)
        return refunded

    def fetch(self, address: str) -> Record:
        address = normalize_address(address)
        raw = self.ledger.read(address)
        if raw is None:
            raise NotFound(address)
        return self._decode(raw)

    def fetch_by_id(self, record_id: int) -> Record:
        return self.fetch(self.address_for(record_id).address)
