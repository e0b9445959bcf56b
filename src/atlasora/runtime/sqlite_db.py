# src/atlasora/runtime/sqlite_db.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    # No default=str: a non-JSON type in the snapshot is a bug, fail fast.
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    try:
        raw = str(os.environ.get(name, "")).strip()
        return int(raw) if raw else int(default)
    except Exception:
        return int(default)


class SqliteDB:
    """SQLite manager for the emission service.

    - single durable DB file for schedule snapshot + issuance log
    - never shares connections across threads
    - bounded retry on writer-lock contention in write_tx()
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    @staticmethod
    def _sqlite_synchronous_pragma() -> str:
        """FULL in prod, NORMAL otherwise; ATLASORA_SQLITE_SYNCHRONOUS overrides."""
        mode = (os.environ.get("ATLASORA_MODE") or "prod").strip().lower()
        default = "FULL" if mode == "prod" else "NORMAL"
        raw = (os.environ.get("ATLASORA_SQLITE_SYNCHRONOUS") or default).strip().upper()
        if raw not in {"OFF", "NORMAL", "FULL", "EXTRA"}:
            raw = default
        return raw

    def ensure_parent_dir(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        self.ensure_parent_dir()

        connect_timeout_s = float(_env_int("ATLASORA_SQLITE_CONNECT_TIMEOUT_MS", 30_000)) / 1000.0

        con = sqlite3.connect(
            self.path,
            timeout=connect_timeout_s,
            isolation_level=None,  # BEGIN/COMMIT managed by write_tx()
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        row = con.execute("PRAGMA journal_mode=WAL;").fetchone()
        mode = str(row[0]).strip().lower() if row is not None else ""
        allow_non_wal = (os.environ.get("ATLASORA_SQLITE_ALLOW_NON_WAL") or "").strip() in {"1", "true", "TRUE"}
        if mode and mode != "wal" and not allow_non_wal:
            con.close()
            raise RuntimeError(f"sqlite journal_mode is '{mode}', expected 'wal'")

        con.execute(f"PRAGMA synchronous={self._sqlite_synchronous_pragma()};")
        con.execute("PRAGMA foreign_keys=ON;")
        con.execute("PRAGMA temp_store=MEMORY;")

        busy_ms = max(0, _env_int("ATLASORA_SQLITE_BUSY_TIMEOUT_MS", int(connect_timeout_s * 1000)))
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
                CREATE TABLE IF NOT EXISTS emission_state (
                  id INTEGER PRIMARY KEY CHECK (id = 1),
                  current_cycle INTEGER NOT NULL,
                  total_issued TEXT NOT NULL,
                  state_json TEXT NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )

            # Amounts are TEXT: 18-decimal token units overflow SQLite's 64-bit INTEGER.
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS issuance_log (
                  cycle INTEGER PRIMARY KEY,
                  account TEXT NOT NULL,
                  amount TEXT NOT NULL,
                  issued_at INTEGER NOT NULL
                );
                """
            )

            row = con.execute("SELECT value FROM meta WHERE key='schema_version' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
            else:
                try:
                    v = int(str(row["value"]))
                except Exception:
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

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """Write transaction with bounded retry on BEGIN IMMEDIATE contention.

        Rolls back when the body raises; the exception propagates.
        """
        deadline_ms = max(250, _env_int("ATLASORA_SQLITE_WRITE_DEADLINE_MS", 30_000))
        deadline_ts = _now_ms() + deadline_ms

        base_sleep = max(0.001, float(_env_int("ATLASORA_SQLITE_WRITE_BACKOFF_BASE_MS", 5)) / 1000.0)
        max_sleep = max(base_sleep, float(_env_int("ATLASORA_SQLITE_WRITE_BACKOFF_MAX_MS", 250)) / 1000.0)

        with self.connection() as con:
            attempt = 0
            while True:
                try:
                    con.execute("BEGIN IMMEDIATE;")
                    break
                except sqlite3.OperationalError as e:
                    if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                        raise
                    sleep_s = min(max_sleep, base_sleep * (2.0 ** min(attempt, 8)))
                    time.sleep(sleep_s * (0.5 + random.random()))
                    attempt += 1

            try:
                yield con
                con.execute("COMMIT;")
            except Exception:
                con.execute("ROLLBACK;")
                raise


class SqliteStateStore:
    """Emission snapshot store persisted in SQLite.

    - read(): latest snapshot
    - write(st): overwrite the snapshot atomically
    - create(st): insert the first snapshot, never overwrite
    - update(mut): read-modify-write inside a single write transaction

    The authoritative snapshot is a single row; issuance_log mirrors the
    snapshot's issuance records for SQL access.
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    @property
    def path(self) -> str:
        return self._db.path

    def exists(self) -> bool:
        with self._db.connection() as con:
            return con.execute("SELECT 1 FROM emission_state WHERE id=1;").fetchone() is not None

    def read(self) -> Json:
        with self._db.connection() as con:
            return self._read_row(con)

    @staticmethod
    def _read_row(con: sqlite3.Connection) -> Json:
        row = con.execute("SELECT state_json FROM emission_state WHERE id=1;").fetchone()
        if row is None:
            raise FileNotFoundError("sqlite emission_state is missing")
        st = json.loads(str(row["state_json"]))
        if not isinstance(st, dict):
            raise ValueError("emission_state is not a JSON object")
        return st

    @staticmethod
    def _write_row(con: sqlite3.Connection, st: Json) -> None:
        sched = st.get("schedule") if isinstance(st.get("schedule"), dict) else {}
        cycle = int(sched.get("current_cycle", 0))
        total = str(int(sched.get("total_issued", 0)))
        con.execute(
            """
            INSERT INTO emission_state(id, current_cycle, total_issued, state_json, updated_ts_ms)
            VALUES(1, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
              current_cycle=excluded.current_cycle,
              total_issued=excluded.total_issued,
              state_json=excluded.state_json,
              updated_ts_ms=excluded.updated_ts_ms;
            """,
            (cycle, total, _canon_json(st), _now_ms()),
        )
        SqliteStateStore._write_log(con, st)

    @staticmethod
    def _write_log(con: sqlite3.Connection, st: Json) -> None:
        for rec in st.get("issuances") or []:
            con.execute(
                "INSERT OR IGNORE INTO issuance_log(cycle, account, amount, issued_at) VALUES(?, ?, ?, ?);",
                (int(rec["cycle"]), str(rec["to"]), str(int(rec["amount"])), int(rec["time"])),
            )

    def write(self, st: Json) -> None:
        if not isinstance(st, dict):
            raise ValueError("snapshot write expects dict")
        with self._db.write_tx() as con:
            self._write_row(con, st)

    def create(self, st: Json) -> None:
        """Insert the first snapshot; FileExistsError if one is already there.

        The check and the insert share one BEGIN IMMEDIATE transaction, so two
        processes deploying onto the same file cannot both succeed.
        """
        if not isinstance(st, dict):
            raise ValueError("snapshot create expects dict")
        with self._db.write_tx() as con:
            if con.execute("SELECT 1 FROM emission_state WHERE id=1;").fetchone() is not None:
                raise FileExistsError("sqlite emission_state already exists")
            sched = st.get("schedule") if isinstance(st.get("schedule"), dict) else {}
            try:
                con.execute(
                    "INSERT INTO emission_state(id, current_cycle, total_issued, state_json, updated_ts_ms) "
                    "VALUES(1, ?, ?, ?, ?);",
                    (
                        int(sched.get("current_cycle", 0)),
                        str(int(sched.get("total_issued", 0))),
                        _canon_json(st),
                        _now_ms(),
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise FileExistsError("sqlite emission_state already exists") from e
            self._write_log(con, st)

    def update(self, mut: Callable[[Json], Any]) -> Any:
        with self._db.write_tx() as con:
            st = self._read_row(con)
            out = mut(st)
            self._write_row(con, st)
            return out

    def issuance_log(self) -> List[Json]:
        with self._db.connection() as con:
            rows = con.execute("SELECT cycle, account, amount, issued_at FROM issuance_log ORDER BY cycle;").fetchall()
        return [
            {"cycle": int(r["cycle"]), "to": str(r["account"]), "amount": int(r["amount"]), "time": int(r["issued_at"])}
            for r in rows
        ]
