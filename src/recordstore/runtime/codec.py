# src/recordstore/runtime/codec.py
from __future__ import annotations

"""Fixed-layout record codec.

Persisted frame (little-endian integers):

  [id:8][nameLen:2][name:nameLen][authority:32][active:1]

Bytes after the frame are ignored on decode so a frame can sit in storage that
was allocated larger than the record needs.
"""

import struct
from dataclasses import dataclass
from typing import Any, Dict

from recordstore.ledger.constants import (
    ACTIVE_LEN,
    ID_LEN,
    IDENTITY_LEN,
    MAX_NAME_LEN,
    MIN_FRAME_LEN,
    NAME_PREFIX_LEN,
)
from recordstore.ledger.types import identity_bytes, normalize_identity, normalize_record_id
from recordstore.runtime.errors import CorruptRecord, NameTooLong

Json = Dict[str, Any]

_HEAD = struct.Struct("<QH")

MAX_RECORD_SIZE: int = MIN_FRAME_LEN + MAX_NAME_LEN


@dataclass(frozen=True, slots=True)
class Record:
    id: int
    name: str
    authority: str
    active: bool

    def to_json(self) -> Json:
        return {
            "id": self.id,
            "name": self.name,
            "authority": self.authority,
            "active": self.active,
        }


def encoded_size(name: str) -> int:
    return MIN_FRAME_LEN + len(name.encode("utf-8"))


def encode(record: Record, *, max_name_len: int = MAX_NAME_LEN) -> bytes:
    name_b = record.name.encode("utf-8")
    if len(name_b) > max_name_len:
        raise NameTooLong(len(name_b), max_name_len)
    rid = normalize_record_id(record.id)
    auth = identity_bytes(record.authority, field="authority")
    return b"".join(
        (
            _HEAD.pack(rid, len(name_b)),
            name_b,
            auth,
            b"\x01" if record.active else b"\x00",
        )
    )


def decode(buf: bytes, *, max_name_len: int = MAX_NAME_LEN) -> Record:
    buf = bytes(buf)
    if len(buf) < MIN_FRAME_LEN:
        raise CorruptRecord("short_frame", size=len(buf), min=MIN_FRAME_LEN)

    rid, name_len = _HEAD.unpack_from(buf, 0)
    if name_len > max_name_len:
        raise CorruptRecord("name_prefix_exceeds_max", name_len=name_len, max=max_name_len)

    end = MIN_FRAME_LEN + name_len
    if len(buf) < end:
        raise CorruptRecord("truncated_frame", size=len(buf), need=end)

    off = ID_LEN + NAME_PREFIX_LEN
    try:
        name = buf[off : off + name_len].decode("utf-8")
    except UnicodeDecodeError as e:
        raise CorruptRecord("name_not_utf8") from e
    off += name_len

    authority = normalize_identity(buf[off : off + IDENTITY_LEN], field="authority")
    off += IDENTITY_LEN

    flag = buf[off : off + ACTIVE_LEN][0]
    if flag not in (0, 1):
        raise CorruptRecord("bad_active_flag", value=flag)

    return Record(id=rid, name=name, authority=authority, active=bool(flag))
