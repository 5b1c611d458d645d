from __future__ import annotations

import logging
from typing import Optional

from recordstore.ledger.base import Ledger
from recordstore.ledger.memory import MemoryLedger
from recordstore.ledger.sqlite_db import SqliteDB, SqliteLedger
from recordstore.runtime.record_store import RecordStore
from recordstore.runtime.store_config import StoreConfig, load_store_config
from recordstore.util.log import log_event

logger = logging.getLogger("recordstore.boot")


def build_ledger(cfg: StoreConfig) -> Ledger:
    kwargs = {
        "deposit_per_byte": int(cfg.deposit_per_byte),
        "storage_overhead_bytes": int(cfg.storage_overhead_bytes),
    }
    if cfg.ledger_backend == "memory":
        return MemoryLedger(**kwargs)
    return SqliteLedger(db=SqliteDB(path=cfg.db_path, mode=cfg.mode), **kwargs)


def build_store(cfg: Optional[StoreConfig] = None) -> RecordStore:
    """Build a RecordStore from config (env/file driven when cfg is None)."""
    cfg = cfg or load_store_config()
    store = RecordStore(
        build_ledger(cfg),
        namespace_seed=cfg.namespace_seed_bytes,
        store_id=cfg.store_id_bytes,
        max_name_len=cfg.max_name_len,
    )
    log_event(
        logger,
        "store_boot",
        mode=cfg.mode,
        ledger_backend=cfg.ledger_backend,
        db_path=cfg.db_path if cfg.ledger_backend == "sqlite" else None,
        namespace_seed=cfg.namespace_seed,
        max_name_len=cfg.max_name_len,
    )
    return store
