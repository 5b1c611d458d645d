from __future__ import annotations

"""Signed operation envelopes.

The record store core trusts the identities it is handed. This module is the
seam where a signed request becomes such an identity: an envelope names the
operation, its signer, the signer's nonce and the payload, and carries an
Ed25519 signature over canonical_op_message(op, signer, nonce, payload). The
signer's identity is its public key, so verification needs no key registry.

verify_envelope only checks the signature. The nonce is consumed by the
record store inside the same ledger transaction as the operation, so a
captured request cannot be replayed once it has taken effect.
"""

from dataclasses import dataclass, field
from typing import Any, Dict

from recordstore.crypto.sig import canonical_op_message, verify_ed25519_signature
from recordstore.ledger.types import normalize_identity
from recordstore.runtime.errors import InvalidSignature

Json = Dict[str, Any]

OP_CREATE = "create"
OP_UPDATE_STATUS = "update_status"
OP_DELETE = "delete"

OPS = (OP_CREATE, OP_UPDATE_STATUS, OP_DELETE)


@dataclass(frozen=True)
class OpEnvelope:
    op: str
    signer: str
    nonce: int = 0
    payload: Dict[str, Any] = field(default_factory=dict)
    sig: str = ""

    @staticmethod
    def from_json(j: Any) -> "OpEnvelope":
        if isinstance(j, OpEnvelope):
            return j
        if not isinstance(j, dict):
            j = dict(j)
        return OpEnvelope(
            op=str(j.get("op", "")),
            signer=str(j.get("signer", "")),
            nonce=int(j.get("nonce", 0) or 0),
            payload=dict(j.get("payload", {}) or {}),
            sig=str(j.get("sig", "") or ""),
        )

    def to_json(self) -> Json:
        return {"op": self.op, "signer": self.signer, "nonce": self.nonce, "payload": self.payload, "sig": self.sig}

    def message(self) -> bytes:
        return canonical_op_message(op=self.op, signer=self.signer, nonce=self.nonce, payload=self.payload)


def create_payload(*, record_id: int, name: str, creator: str, payer: str) -> Json:
    return {"id": int(record_id), "name": str(name), "creator": str(creator), "payer": str(payer)}


def update_status_payload(*, address: str, active: bool) -> Json:
    return {"address": str(address), "active": bool(active)}


def delete_payload(*, address: str, refund_recipient: str) -> Json:
    return {"address": str(address), "refund_recipient": str(refund_recipient)}


def verify_envelope(env: OpEnvelope) -> str:
    """Return the verified signer identity or raise InvalidSignature."""
    if env.op not in OPS:
        raise InvalidSignature(env.signer, "unknown_op")
    signer = normalize_identity(env.signer, field="signer")
    if not env.sig:
        raise InvalidSignature(signer, "missing_sig")
    if isinstance(env.nonce, bool) or not isinstance(env.nonce, int) or env.nonce < 1:
        raise InvalidSignature(signer, "bad_nonce")
    if not verify_ed25519_signature(message=env.message(), sig=env.sig, pubkey=signer):
        raise InvalidSignature(signer, "bad_sig")
    return signer
