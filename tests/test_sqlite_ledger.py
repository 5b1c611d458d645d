from __future__ import annotations

import json
import multiprocessing as mp
import sqlite3
from pathlib import Path

import pytest

from recordstore.ledger.sqlite_db import SqliteDB, SqliteLedger
from recordstore.runtime.codec import encoded_size
from recordstore.runtime.record_store import RecordStore
from recordstore.runtime.store_boot import build_ledger
from recordstore.runtime.store_config import read_store_config_file
from recordstore.testing.sigtools import identity

OWNER = identity("owner")


def _pragma(con: sqlite3.Connection, name: str) -> int | str:
    row = con.execute(f"PRAGMA {name};").fetchone()
    if row is None:
        raise AssertionError(f"missing pragma: {name}")
    return row[0]


def test_sqlite_operational_pragmas_are_applied(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("RECORDSTORE_SQLITE_SYNCHRONOUS", raising=False)
    monkeypatch.setenv("RECORDSTORE_SQLITE_BUSY_TIMEOUT_MS", "1234")
    monkeypatch.setenv("RECORDSTORE_SQLITE_WAL_AUTOCHECKPOINT", "777")

    db = SqliteDB(path=str(tmp_path / "records.db"), mode="prod")
    db.init_schema()

    with db.connection() as con:
        assert str(_pragma(con, "journal_mode")).lower() == "wal"
        # FULL is the prod default.
        assert int(_pragma(con, "synchronous")) == 2
        assert int(_pragma(con, "foreign_keys")) == 1
        assert int(_pragma(con, "temp_store")) == 2
        assert int(_pragma(con, "busy_timeout")) == 1234
        assert int(_pragma(con, "wal_autocheckpoint")) == 777


def test_synchronous_default_follows_config_mode(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("RECORDSTORE_SQLITE_SYNCHRONOUS", raising=False)
    p = tmp_path / "store.json"
    p.write_text(json.dumps({"mode": "dev", "db_path": str(tmp_path / "dev.db")}), encoding="utf-8")

    ledger = build_ledger(read_store_config_file(str(p)))
    assert isinstance(ledger, SqliteLedger)
    with ledger.db.connection() as con:
        assert int(_pragma(con, "synchronous")) == 1  # NORMAL

    monkeypatch.setenv("RECORDSTORE_SQLITE_SYNCHRONOUS", "EXTRA")
    with ledger.db.connection() as con:
        assert int(_pragma(con, "synchronous")) == 3


def test_schema_version_mismatch_refuses_to_start(tmp_path: Path) -> None:
    db = SqliteDB(path=str(tmp_path / "records.db"))
    db.init_schema()
    with db.write_tx() as con:
        con.execute("UPDATE meta SET value='99' WHERE key='schema_version';")

    with pytest.raises(RuntimeError):
        SqliteLedger(db=db)


def test_records_survive_reopen(tmp_path: Path) -> None:
    path = str(tmp_path / "records.db")
    ledger = SqliteLedger(db=SqliteDB(path=path))
    ledger.fund(OWNER, 10**9)
    store = RecordStore(ledger)
    store.create(1, "durable", OWNER, OWNER)
    store.update_status(store.address_for(1).address, False, OWNER)

    reopened = RecordStore(SqliteLedger(db=SqliteDB(path=path)))
    rec = reopened.fetch_by_id(1)
    assert rec.name == "durable"
    assert rec.active is False
    assert reopened.ledger.balance(OWNER) == 10**9 - ledger.deposit_for(encoded_size("durable"))


def _worker(db_path: str, start: int, n: int) -> None:
    store = RecordStore(SqliteLedger(db=SqliteDB(path=db_path)))
    for rid in range(start, start + n):
        store.create(rid, f"rec-{rid}", OWNER, OWNER)
        store.update_status(store.address_for(rid).address, rid % 2 == 0, OWNER)


def test_concurrent_processes_commit_every_record(tmp_path: Path) -> None:
    """Several processes create disjoint records against one SQLite ledger.

    Every record must land exactly once and the payer must be charged exactly
    the sum of their deposits.
    """
    db_path = str(tmp_path / "records.db")
    ledger = SqliteLedger(db=SqliteDB(path=db_path))
    ledger.fund(OWNER, 10**12)

    workers = 4
    per = 25
    procs: list[mp.Process] = []
    for w in range(workers):
        pr = mp.Process(target=_worker, args=(db_path, w * per, per))
        pr.start()
        procs.append(pr)

    for pr in procs:
        pr.join(60)
        assert pr.exitcode == 0

    store = RecordStore(ledger)
    charged = 0
    for rid in range(workers * per):
        rec = store.fetch_by_id(rid)
        assert rec.name == f"rec-{rid}"
        assert rec.active is (rid % 2 == 0)
        charged += ledger.deposit_for(encoded_size(rec.name))

    assert ledger.balance(OWNER) == 10**12 - charged
