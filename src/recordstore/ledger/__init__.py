# src/recordstore/ledger/__init__.py
"""
Record store ledger package

  - constants: layout bounds, deposit rates, default namespace seed
  - types: identity / address / id coercion
  - address: deterministic address derivation (seed + id -> address, bump)
  - base: Ledger / LedgerTxn collaborator interface
  - memory: in-process Ledger for tests and local development
  - sqlite_db: durable SQLite-backed Ledger

The record store (recordstore.runtime.record_store) depends only on base and
address; concrete backends are chosen by runtime.store_boot.
"""

from __future__ import annotations

__all__ = [
    "constants",
    "types",
    "address",
    "base",
    "memory",
    "sqlite_db",
]
