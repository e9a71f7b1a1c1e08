"""
In-memory store backend.

Holds every database as a list of datoms inside the client object. Used by
tests and by the "memory" backend setting for throwaway runs.
"""

import threading
from typing import Any, Optional

from humboi.stores.base import Datom, Snapshot, TxResult, encode_value
from humboi.stores.txdata import expand_tx_data


class MemorySnapshot(Snapshot):
    """Snapshot over a frozen copy of the datom log."""

    def __init__(self, log: tuple[Datom, ...], basis_t: int):
        super().__init__(basis_t)
        current: dict[tuple[int, str, str], Datom] = {}
        for d in log:
            key = (d.e, d.a, encode_value(d.v))
            if d.added:
                current[key] = d
            else:
                current.pop(key, None)
        self._current = list(current.values())
        self._max_id = max((max(d.e, d.tx) for d in log), default=0)

    def _datoms(self, e: Optional[int] = None, a: Optional[str] = None, v: Any = None) -> list[Datom]:
        encoded = encode_value(v) if v is not None else None
        return [
            d for d in self._current
            if (e is None or d.e == e)
            and (a is None or d.a == a)
            and (encoded is None or encode_value(d.v) == encoded)
        ]

    def max_id(self) -> int:
        return self._max_id


class MemoryConnection:
    """Connection to one in-memory database."""

    def __init__(self, db_name: str, log: list[Datom], lock: threading.Lock):
        self.db_name = db_name
        self._log = log
        self._lock = lock

    def _snapshot(self) -> MemorySnapshot:
        log = tuple(self._log)
        basis = max((d.tx for d in log), default=0)
        return MemorySnapshot(log, basis)

    def db(self) -> MemorySnapshot:
        with self._lock:
            return self._snapshot()

    def transact(self, tx_data: list[Any]) -> TxResult:
        with self._lock:
            before = self._snapshot()
            tx = before.max_id() + 1
            datoms, tempids = expand_tx_data(tx_data, before, tx)
            self._log.extend(datoms)
            return TxResult(tx=tx, basis_before=before.basis_t, datoms=datoms, tempids=tempids)

    def __repr__(self) -> str:
        return f"MemoryConnection(db_name={self.db_name})"


class MemoryStoreClient:
    """Store client keeping all databases in process memory."""

    def __init__(self) -> None:
        self._databases: dict[str, list[Datom]] = {}
        self._lock = threading.Lock()

    def connect(self, db_name: str) -> MemoryConnection:
        with self._lock:
            log = self._databases.setdefault(db_name, [])
        return MemoryConnection(db_name, log, self._lock)

    def database_names(self) -> list[str]:
        return sorted(self._databases)
