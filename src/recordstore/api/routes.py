from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from recordstore.api.errors import ApiError
from recordstore.api.schemas import CreateRecordRequest, DeleteRecordRequest, UpdateStatusRequest
from recordstore.ledger.types import normalize_identity
from recordstore.runtime.codec import Record
from recordstore.runtime.op_envelope import (
    OP_CREATE,
    OP_DELETE,
    OP_UPDATE_STATUS,
    OpEnvelope,
    create_payload,
    delete_payload,
    update_status_payload,
    verify_envelope,
)
from recordstore.runtime.record_store import RecordStore

router = APIRouter()

Json = Dict[str, Any]


def _store(request: Request) -> RecordStore:
    st = getattr(request.app.state, "store", None)
    if st is None:
        raise ApiError.internal("not_ready", "store not attached to app.state", {})
    return st


def _record_out(store: RecordStore, rec: Record) -> Json:
    derived = store.address_for(rec.id)
    return {"ok": True, "address": derived.address, "bump": derived.bump, "record": rec.to_json()}


@router.get("/health")
def health() -> Json:
    return {"ok": True}


@router.get("/records/derive/{record_id}")
def derive_address(record_id: int, request: Request) -> Json:
    d = _store(request).address_for(record_id)
    return {"ok": True, "id": record_id, "address": d.address, "bump": d.bump}


@router.post("/records", status_code=201)
def create_record(body: CreateRecordRequest, request: Request) -> Json:
    """Create a record at derive(namespace, id).

    The creator signs as the new authority; the payer (defaults to the
    creator) signs to fund the storage deposit. Both sign the same payload,
    each under their own nonce, and both nonces are consumed with the create.
    """
    store = _store(request)
    payer_raw = body.payer if body.payer is not None else body.creator
    payload = create_payload(record_id=body.id, name=body.name, creator=body.creator, payer=payer_raw)

    creator = verify_envelope(
        OpEnvelope(op=OP_CREATE, signer=body.creator, nonce=body.creator_nonce, payload=payload, sig=body.creator_sig)
    )
    payer = creator
    nonces = {creator: body.creator_nonce}
    if body.payer is not None and normalize_identity(body.payer, field="payer") != creator:
        payer = verify_envelope(
            OpEnvelope(
                op=OP_CREATE,
                signer=body.payer,
                nonce=body.payer_nonce or 0,
                payload=payload,
                sig=body.payer_sig or "",
            )
        )
        nonces[payer] = int(body.payer_nonce or 0)

    rec = store.create(body.id, body.name, creator, payer, nonces=nonces)
    return _record_out(store, rec)


@router.get("/records/{address}")
def fetch_record(address: str, request: Request) -> Json:
    store = _store(request)
    rec = store.fetch(address)
    return _record_out(store, rec)


@router.post("/records/{address}/status")
def update_status(address: str, body: UpdateStatusRequest, request: Request) -> Json:
    store = _store(request)
    env = OpEnvelope(
        op=OP_UPDATE_STATUS,
        signer=body.authority,
        nonce=body.nonce,
        payload=update_status_payload(address=address, active=body.active),
        sig=body.sig,
    )
    caller = verify_envelope(env)
    rec = store.update_status(address, body.active, caller, nonces={caller: body.nonce})
    return _record_out(store, rec)


@router.post("/records/{address}/delete")
def delete_record(address: str, body: DeleteRecordRequest, request: Request) -> Json:
    store = _store(request)
    recipient = body.refund_recipient if body.refund_recipient is not None else body.authority
    env = OpEnvelope(
        op=OP_DELETE,
        signer=body.authority,
        nonce=body.nonce,
        payload=delete_payload(address=address, refund_recipient=recipient),
        sig=body.sig,
    )
    caller = verify_envelope(env)
    refunded = store.delete(address, caller, recipient, nonces={caller: body.nonce})
    return {"ok": True, "address": address, "refunded": refunded, "refund_recipient": normalize_identity(recipient)}


@router.get("/balances/{identity}")
def balance(identity: str, request: Request) -> Json:
    ident = normalize_identity(identity)
    return {"ok": True, "identity": ident, "balance": _store(request).ledger.balance(ident)}


@router.get("/nonces/{identity}")
def nonce(identity: str, request: Request) -> Json:
    """Last nonce consumed by `identity`; sign the next request with next_nonce."""
    ident = normalize_identity(identity)
    last = _store(request).ledger.nonce(ident)
    return {"ok": True, "identity": ident, "nonce": last, "next_nonce": last + 1}
