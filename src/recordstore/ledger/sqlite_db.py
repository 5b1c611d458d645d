# src/recordstore/ledger/sqlite_db.py
from __future__ import annotations

import os
import random
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from recordstore.ledger.base import Ledger, LedgerTxn, StorageOverflow, next_nonce_or_raise
from recordstore.ledger.types import normalize_identity
from recordstore.runtime.errors import InsufficientFunds, StorageInUse, StorageNotAllocated


def _now_ms() -> int:
    return int(time.time() * 1000)


def _env_int(name: str, default: int) -> int:
    try:
        raw = str(os.environ.get(name, "")).strip()
        return int(raw) if raw else int(default)
    except Exception:
        return int(default)


class SqliteDB:
    """SQLite manager for the record ledger.

    Design goals:
      - single durable DB file for storage slots + balances
      - cross-process safe (SQLite locks)
      - cross-thread safe by never sharing connections

    SQLite allows only one writer at a time. Under multi-process workloads,
    BEGIN IMMEDIATE can transiently fail with "database is locked", so
    write_tx() retries with bounded backoff.
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str, mode: str = "prod") -> None:
        self.path = str(path)
        self.mode = str(mode or "prod").strip().lower()

    def _sqlite_synchronous_pragma(self) -> str:
        """Return a safe PRAGMA synchronous value.

        Defaults follow the store mode:
          - prod        -> FULL
          - dev/testnet -> NORMAL

        Override with RECORDSTORE_SQLITE_SYNCHRONOUS in {OFF,NORMAL,FULL,EXTRA}.
        """
        default = "FULL" if self.mode == "prod" else "NORMAL"
        raw = (os.environ.get("RECORDSTORE_SQLITE_SYNCHRONOUS") or default).strip().upper()

        if raw not in {"OFF", "NORMAL", "FULL", "EXTRA"}:
            raw = default
        return raw

    def ensure_parent_dir(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        self.ensure_parent_dir()

        connect_timeout_s = float(_env_int("RECORDSTORE_SQLITE_CONNECT_TIMEOUT_MS", 30_000)) / 1000.0

        con = sqlite3.connect(
            self.path,
            timeout=connect_timeout_s,
            isolation_level=None,  # we manage BEGIN/COMMIT ourselves
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        # WAL is required unless explicitly waived.
        allow_non_wal = (os.environ.get("RECORDSTORE_SQLITE_ALLOW_NON_WAL") or "").strip() in {"1", "true", "TRUE"}
        row = con.execute("PRAGMA journal_mode=WAL;").fetchone()
        mode = str(row[0]).strip().lower() if row is not None else ""
        if mode and mode != "wal" and not allow_non_wal:
            con.close()
            raise RuntimeError(f"sqlite journal_mode is '{mode}', expected 'wal'")

        con.execute(f"PRAGMA synchronous={self._sqlite_synchronous_pragma()};")
        con.execute("PRAGMA foreign_keys=ON;")
        con.execute("PRAGMA temp_store=MEMORY;")

        wal_ckpt = max(1, _env_int("RECORDSTORE_SQLITE_WAL_AUTOCHECKPOINT", 1000))
        con.execute(f"PRAGMA wal_autocheckpoint={wal_ckpt};")

        busy_ms = max(0, _env_int("RECORDSTORE_SQLITE_BUSY_TIMEOUT_MS", int(connect_timeout_s * 1000)))
        con.execute(f"PRAGMA busy_timeout={busy_ms};")

        return con

    def init_schema(self) -> None:
        with self.write_tx() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS meta (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL
                );
                """
            )

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS storage (
                  address TEXT PRIMARY KEY,
                  data BLOB NOT NULL,
                  deposit INTEGER NOT NULL,
                  payer TEXT NOT NULL,
                  created_ts_ms INTEGER NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS balances (
                  identity TEXT PRIMARY KEY,
                  amount INTEGER NOT NULL CHECK (amount >= 0)
                );
                """
            )

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS nonces (
                  identity TEXT PRIMARY KEY,
                  last_nonce INTEGER NOT NULL CHECK (last_nonce >= 0)
                );
                """
            )

            row = con.execute("SELECT value FROM meta WHERE key='schema_version' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
            else:
                try:
                    v = int(str(row["value"]))
                except ValueError:
                    v = 0
                if v != self.SCHEMA_VERSION:
                    raise RuntimeError(
                        f"sqlite schema_version mismatch: have={v} want={self.SCHEMA_VERSION}. "
                        "Refuse to start to avoid corrupting data."
                    )

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            yield con
        finally:
            con.close()

    @staticmethod
    def _is_locked_error(e: Exception) -> bool:
        msg = str(e).lower()
        return ("database is locked" in msg) or ("database is busy" in msg)

    def _backoff(self, attempt: int) -> None:
        base_sleep = max(0.001, float(_env_int("RECORDSTORE_SQLITE_WRITE_BACKOFF_BASE_MS", 5)) / 1000.0)
        max_sleep = max(base_sleep, float(_env_int("RECORDSTORE_SQLITE_WRITE_BACKOFF_MAX_MS", 250)) / 1000.0)
        sleep_s = min(max_sleep, base_sleep * (2.0 ** min(attempt, 8)))
        time.sleep(sleep_s * (0.5 + random.random()))

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """Open a write transaction with bounded retry on writer-lock contention.

        Policy:
          - retry BEGIN IMMEDIATE / COMMIT until a deadline
          - exponential backoff with jitter
          - then raise (fail closed)
          - any exception from the body rolls the whole transaction back
        """
        deadline_ts = _now_ms() + max(250, _env_int("RECORDSTORE_SQLITE_WRITE_DEADLINE_MS", 30_000))

        with self.connection() as con:
            attempt = 0
            while True:
                try:
                    con.execute("BEGIN IMMEDIATE;")
                    break
                except sqlite3.OperationalError as e:
                    if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                        raise
                    self._backoff(attempt)
                    attempt += 1

            try:
                yield con

                attempt = 0
                while True:
                    try:
                        con.execute("COMMIT;")
                        break
                    except sqlite3.OperationalError as e:
                        if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                            raise
                        self._backoff(attempt)
                        attempt += 1
            except BaseException:
                con.execute("ROLLBACK;")
                raise


class _SqliteTxn(LedgerTxn):
    def __init__(self, ledger: "SqliteLedger", con: sqlite3.Connection, address: str) -> None:
        self.address = address
        self._ledger = ledger
        self._con = con

    def _row(self) -> Optional[sqlite3.Row]:
        return self._con.execute(
            "SELECT data, deposit FROM storage WHERE address=?;",
            (self.address,),
        ).fetchone()

    def _balance(self, identity: str) -> int:
        row = self._con.execute("SELECT amount FROM balances WHERE identity=?;", (identity,)).fetchone()
        return 0 if row is None else int(row["amount"])

    def _credit(self, identity: str, amount: int) -> None:
        self._con.execute(
            """
            INSERT INTO balances(identity, amount) VALUES(?, ?)
            ON CONFLICT(identity) DO UPDATE SET amount = amount + excluded.amount;
            """,
            (identity, int(amount)),
        )

    def read(self) -> Optional[bytes]:
        row = self._row()
        return None if row is None else bytes(row["data"])

    def allocate(self, size: int, payer: str) -> int:
        payer = normalize_identity(payer, field="payer")
        if self._row() is not None:
            raise StorageInUse(self.address)
        deposit = self._ledger.deposit_for(size)
        have = self._balance(payer)
        if have < deposit:
            raise InsufficientFunds(payer, deposit, have)
        now = _now_ms()
        self._con.execute("UPDATE balances SET amount = amount - ? WHERE identity=?;", (deposit, payer))
        self._con.execute(
            """
            INSERT INTO storage(address, data, deposit, payer, created_ts_ms, updated_ts_ms)
            VALUES(?, ?, ?, ?, ?, ?);
            """,
            (self.address, bytes(int(size)), deposit, payer, now, now),
        )
        return deposit

    def write(self, data: bytes) -> None:
        row = self._row()
        if row is None:
            raise StorageNotAllocated(self.address)
        cur = bytes(row["data"])
        data = bytes(data)
        if len(data) > len(cur):
            raise StorageOverflow(self.address, len(data), len(cur))
        self._con.execute(
            "UPDATE storage SET data=?, updated_ts_ms=? WHERE address=?;",
            (data + cur[len(data) :], _now_ms(), self.address),
        )

    def free(self, refund_recipient: str) -> int:
        recipient = normalize_identity(refund_recipient, field="refund_recipient")
        row = self._row()
        if row is None:
            raise StorageNotAllocated(self.address)
        deposit = int(row["deposit"])
        self._con.execute("DELETE FROM storage WHERE address=?;", (self.address,))
        self._credit(recipient, deposit)
        return deposit

    def consume_nonce(self, identity: str, nonce: int) -> int:
        ident = normalize_identity(identity, field="signer")
        row = self._con.execute("SELECT last_nonce FROM nonces WHERE identity=?;", (ident,)).fetchone()
        n = next_nonce_or_raise(ident, 0 if row is None else int(row["last_nonce"]), nonce)
        self._con.execute(
            """
            INSERT INTO nonces(identity, last_nonce) VALUES(?, ?)
            ON CONFLICT(identity) DO UPDATE SET last_nonce = excluded.last_nonce;
            """,
            (ident, n),
        )
        return n


class SqliteLedger(Ledger):
    """Durable Ledger persisted in SQLite.

    Each transaction is one BEGIN IMMEDIATE write transaction, which serializes
    writers across threads and processes; readers never block on it (WAL).
    """

    def __init__(self, *, db: SqliteDB, **kwargs: int) -> None:
        super().__init__(**kwargs)
        self._db = db
        self._db.init_schema()

    @property
    def db(self) -> SqliteDB:
        return self._db

    @contextmanager
    def transaction(self, address: str) -> Iterator[LedgerTxn]:
        with self._db.write_tx() as con:
            yield _SqliteTxn(self, con, address)

    def read(self, address: str) -> Optional[bytes]:
        with self._db.connection() as con:
            row = con.execute("SELECT data FROM storage WHERE address=?;", (address,)).fetchone()
            return None if row is None else bytes(row["data"])

    def balance(self, identity: str) -> int:
        ident = normalize_identity(identity)
        with self._db.connection() as con:
            row = con.execute("SELECT amount FROM balances WHERE identity=?;", (ident,)).fetchone()
            return 0 if row is None else int(row["amount"])

    def fund(self, identity: str, amount: int) -> int:
        ident = normalize_identity(identity)
        if int(amount) < 0:
            raise ValueError("fund amount must be >= 0")
        with self._db.write_tx() as con:
            con.execute(
                """
                INSERT INTO balances(identity, amount) VALUES(?, ?)
                ON CONFLICT(identity) DO UPDATE SET amount = amount + excluded.amount;
                """,
                (ident, int(amount)),
            )
            row = con.execute("SELECT amount FROM balances WHERE identity=?;", (ident,)).fetchone()
            return int(row["amount"])

    def nonce(self, identity: str) -> int:
        ident = normalize_identity(identity, field="signer")
        with self._db.connection() as con:
            row = con.execute("SELECT last_nonce FROM nonces WHERE identity=?;", (ident,)).fetchone()
            return 0 if row is None else int(row["last_nonce"])
