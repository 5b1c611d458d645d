from __future__ import annotations

"""Pydantic request schemas for the record API.

These exist only for HTTP input validation. Identity and signature checks
happen in op_envelope/record_store, so errors there keep their domain codes.
"""

from typing import Optional

from pydantic import BaseModel, Field


class CreateRecordRequest(BaseModel):
    id: int = Field(..., ge=0, le=2**64 - 1, description="Caller-chosen u64 record id")
    name: str = Field(..., description="Record name (bounded in UTF-8 bytes)")

    creator: str = Field(..., description="Creator identity (hex Ed25519 pubkey); becomes the authority")
    creator_nonce: int = Field(..., ge=1, description="Creator's next nonce (GET /v1/nonces/{identity})")
    creator_sig: str = Field(..., description="Creator signature over the create message")

    # Funding actor defaults to the creator.
    payer: Optional[str] = Field(default=None, description="Funding identity paying the storage deposit")
    payer_nonce: Optional[int] = Field(default=None, ge=1, description="Payer's next nonce")
    payer_sig: Optional[str] = Field(default=None, description="Payer signature over the create message")


class UpdateStatusRequest(BaseModel):
    active: bool
    authority: str = Field(..., description="Caller identity; must equal the record authority")
    nonce: int = Field(..., ge=1)
    sig: str


class DeleteRecordRequest(BaseModel):
    authority: str = Field(..., description="Caller identity; must equal the record authority")
    refund_recipient: Optional[str] = Field(default=None, description="Deposit refund target, defaults to authority")
    nonce: int = Field(..., ge=1)
    sig: str
