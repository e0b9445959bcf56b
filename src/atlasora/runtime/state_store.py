# src/atlasora/runtime/state_store.py
from __future__ import annotations

import copy
import threading
from typing import Any, Callable, Dict, List, Optional, Protocol

from atlasora.runtime.sqlite_db import SqliteDB, SqliteStateStore

Json = Dict[str, Any]


class StateStore(Protocol):
    def exists(self) -> bool: ...

    def read(self) -> Json: ...

    def write(self, st: Json) -> None: ...

    def create(self, st: Json) -> None: ...

    def update(self, mut: Callable[[Json], Any]) -> Any: ...


class MemoryStateStore:
    """In-process snapshot store with the same contract as SqliteStateStore.

    update() runs `mut` on a deep copy and only swaps it in when `mut` returns,
    so a raising mutation leaves the stored snapshot untouched.
    """

    def __init__(self, initial: Optional[Json] = None) -> None:
        self._lock = threading.Lock()
        self._st: Optional[Json] = copy.deepcopy(initial) if initial is not None else None

    def exists(self) -> bool:
        with self._lock:
            return self._st is not None

    def read(self) -> Json:
        with self._lock:
            if self._st is None:
                raise FileNotFoundError("emission state is missing")
            return copy.deepcopy(self._st)

    def write(self, st: Json) -> None:
        if not isinstance(st, dict):
            raise ValueError("snapshot write expects dict")
        with self._lock:
            self._st = copy.deepcopy(st)

    def create(self, st: Json) -> None:
        if not isinstance(st, dict):
            raise ValueError("snapshot create expects dict")
        with self._lock:
            if self._st is not None:
                raise FileExistsError("emission state already exists")
            self._st = copy.deepcopy(st)

    def update(self, mut: Callable[[Json], Any]) -> Any:
        with self._lock:
            if self._st is None:
                raise FileNotFoundError("emission state is missing")
            work = copy.deepcopy(self._st)
            out = mut(work)
            self._st = work
            return out

    def issuance_log(self) -> List[Json]:
        with self._lock:
            if self._st is None:
                return []
            return copy.deepcopy(list(self._st.get("issuances") or []))


def open_state_store(db_path: str) -> StateStore:
    """`:memory:` selects MemoryStateStore; anything else is a SQLite file path."""
    p = str(db_path or "").strip()
    if p == ":memory:":
        return MemoryStateStore()
    if not p:
        raise ValueError("db_path must be a non-empty string")
    return SqliteStateStore(db=SqliteDB(path=p))


__all__ = ["MemoryStateStore", "StateStore", "open_state_store"]
