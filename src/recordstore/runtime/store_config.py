# src/recordstore/runtime/store_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from recordstore.ledger.constants import (
    DEFAULT_STORE_ID_HEX,
    DEPOSIT_PER_BYTE,
    MAX_NAME_LEN,
    MAX_SEED_LEN,
    NAMESPACE_SEED,
    STORAGE_OVERHEAD_BYTES,
)

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


@dataclass(frozen=True)
class StoreConfig:
    mode: str  # "dev" | "testnet" | "prod"

    ledger_backend: str  # "memory" | "sqlite"
    db_path: str

    namespace_seed: str
    store_id: str  # 32-byte hex
    max_name_len: int

    deposit_per_byte: int
    storage_overhead_bytes: int

    api_host: str
    api_port: int

    log_level: str

    @property
    def namespace_seed_bytes(self) -> bytes:
        return self.namespace_seed.encode("utf-8")

    @property
    def store_id_bytes(self) -> bytes:
        return bytes.fromhex(self.store_id)


_ALLOWED_MODES = {"dev", "testnet", "prod"}
_ALLOWED_BACKENDS = {"memory", "sqlite"}


def validate_store_config(cfg: StoreConfig) -> None:
    """Fail-fast validation for operator config."""

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    if cfg.ledger_backend not in _ALLOWED_BACKENDS:
        raise ValueError(f"ledger_backend must be one of {_ALLOWED_BACKENDS}; got: {cfg.ledger_backend!r}")

    if mode == "prod" and cfg.ledger_backend == "memory":
        # An in-memory ledger loses every record and deposit on restart.
        raise ValueError("ledger_backend 'memory' is not allowed in prod mode")

    if cfg.ledger_backend == "sqlite" and not str(cfg.db_path or "").strip():
        raise ValueError("db_path must be a non-empty string for the sqlite backend")

    seed = cfg.namespace_seed_bytes
    if not seed or len(seed) > MAX_SEED_LEN:
        raise ValueError(f"namespace_seed must be 1..{MAX_SEED_LEN} bytes; got {len(seed)}")

    try:
        sid = cfg.store_id_bytes
    except ValueError as e:
        raise ValueError("store_id must be hex") from e
    if len(sid) != 32:
        raise ValueError(f"store_id must be 32 bytes; got {len(sid)}")

    if int(cfg.max_name_len) <= 0 or int(cfg.max_name_len) > 0xFFFF:
        raise ValueError(f"max_name_len must be 1..65535; got: {cfg.max_name_len}")

    if int(cfg.deposit_per_byte) < 0 or int(cfg.storage_overhead_bytes) < 0:
        raise ValueError("deposit_per_byte and storage_overhead_bytes must be >= 0")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")


def default_store_config() -> StoreConfig:
    return StoreConfig(
        mode="prod",
        ledger_backend="sqlite",
        db_path="./data/recordstore.db",
        namespace_seed=NAMESPACE_SEED.decode("utf-8"),
        store_id=DEFAULT_STORE_ID_HEX,
        max_name_len=MAX_NAME_LEN,
        deposit_per_byte=DEPOSIT_PER_BYTE,
        storage_overhead_bytes=STORAGE_OVERHEAD_BYTES,
        api_host="127.0.0.1",
        api_port=8080,
        log_level="INFO",
    )


def store_config_from_dict(raw: Json) -> StoreConfig:
    if not isinstance(raw, dict):
        raise ValueError("store config must be a JSON object")

    d = default_store_config()

    cfg = StoreConfig(
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        ledger_backend=_as_str(raw.get("ledger_backend"), d.ledger_backend).strip().lower(),
        db_path=_as_str(raw.get("db_path"), d.db_path),
        namespace_seed=_as_str(raw.get("namespace_seed"), d.namespace_seed),
        store_id=_as_str(raw.get("store_id"), d.store_id).strip().lower(),
        max_name_len=_as_int(raw.get("max_name_len"), d.max_name_len),
        deposit_per_byte=_as_int(raw.get("deposit_per_byte"), d.deposit_per_byte),
        storage_overhead_bytes=_as_int(raw.get("storage_overhead_bytes"), d.storage_overhead_bytes),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        log_level=_as_str(raw.get("log_level"), d.log_level).strip().upper(),
    )

    validate_store_config(cfg)
    return cfg


def read_store_config_file(path: str) -> StoreConfig:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    return store_config_from_dict(raw)


def load_store_config(*, config_path: Optional[str] = None) -> StoreConfig:
    p = config_path or os.environ.get("RECORDSTORE_CONFIG_PATH")
    if p:
        return read_store_config_file(p)

    cfg = default_store_config()
    validate_store_config(cfg)
    return cfg
