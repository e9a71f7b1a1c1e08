"""
SQLite store backend.

Each database is one SQLite file under the client's root directory holding
a single append-only datoms table. Writers take the database lock with
BEGIN IMMEDIATE, so a concurrent writer surfaces as "database is locked"
which classifies as BUSY and is retried by the caller.
"""

import logging
import re
import sqlite3
from pathlib import Path
from typing import Any, Callable, Optional

from humboi.stores.base import (
    Datom,
    Snapshot,
    TxResult,
    decode_value,
    encode_value,
    store_boundary,
)
from humboi.stores.txdata import expand_tx_data

logger = logging.getLogger(__name__)

DDL = """
CREATE TABLE IF NOT EXISTS datoms (
    e INTEGER NOT NULL,
    a TEXT NOT NULL,
    v TEXT NOT NULL,
    tx INTEGER NOT NULL,
    added INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS datoms_eav ON datoms (e, a);
CREATE INDEX IF NOT EXISTS datoms_av ON datoms (a, v);
"""

_SAFE_NAME = re.compile(r"[^A-Za-z0-9_.-]")

Query = Callable[[str, tuple], list[tuple]]


class SqliteSnapshot(Snapshot):
    """Snapshot reading through a query function, filtered to basis_t."""

    def __init__(self, query: Query, basis_t: int, max_id: int):
        super().__init__(basis_t)
        self._query = query
        self._max_id = max_id

    def _datoms(self, e: Optional[int] = None, a: Optional[str] = None, v: Any = None) -> list[Datom]:
        clauses = ["tx <= ?"]
        params: list[Any] = [self.basis_t]
        if e is not None:
            clauses.append("e = ?")
            params.append(e)
        if a is not None:
            clauses.append("a = ?")
            params.append(a)
        if v is not None:
            clauses.append("v = ?")
            params.append(encode_value(v))

        sql = (
            "SELECT e, a, v, MAX(tx) FROM datoms WHERE " + " AND ".join(clauses)
            + " GROUP BY e, a, v HAVING SUM(CASE WHEN added THEN 1 ELSE -1 END) > 0"
        )
        with store_boundary():
            rows = self._query(sql, tuple(params))
        return [Datom(row[0], row[1], decode_value(row[2]), row[3], True) for row in rows]

    def max_id(self) -> int:
        return self._max_id


def _read_basis(conn: sqlite3.Connection) -> tuple[int, int]:
    row = conn.execute("SELECT MAX(tx), MAX(e) FROM datoms").fetchone()
    basis = row[0] or 0
    return basis, max(basis, row[1] or 0)


class SqliteConnection:
    """Connection to one SQLite-backed database."""

    def __init__(self, db_name: str, path: Path, timeout: float = 5.0):
        self.db_name = db_name
        self.path = path
        self._timeout = timeout

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.path), timeout=self._timeout, isolation_level=None)
        return conn

    def _query(self, sql: str, params: tuple) -> list[tuple]:
        conn = self._open()
        try:
            return conn.execute(sql, params).fetchall()
        finally:
            conn.close()

    def db(self) -> SqliteSnapshot:
        with store_boundary():
            conn = self._open()
            try:
                basis, max_id = _read_basis(conn)
            finally:
                conn.close()
        return SqliteSnapshot(self._query, basis, max_id)

    def transact(self, tx_data: list[Any]) -> TxResult:
        with store_boundary():
            conn = self._open()
            try:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    basis, max_id = _read_basis(conn)
                    before = SqliteSnapshot(
                        lambda sql, params: conn.execute(sql, params).fetchall(),
                        basis,
                        max_id,
                    )
                    tx = max_id + 1
                    datoms, tempids = expand_tx_data(tx_data, before, tx)
                    conn.executemany(
                        "INSERT INTO datoms (e, a, v, tx, added) VALUES (?, ?, ?, ?, ?)",
                        [(d.e, d.a, encode_value(d.v), d.tx, int(d.added)) for d in datoms],
                    )
                    conn.execute("COMMIT")
                except BaseException:
                    if conn.in_transaction:
                        conn.execute("ROLLBACK")
                    raise
            finally:
                conn.close()

        logger.debug(f"Transacted {len(datoms)} datoms into {self.db_name} (tx {tx})")
        return TxResult(tx=tx, basis_before=basis, datoms=datoms, tempids=tempids)

    def __repr__(self) -> str:
        return f"SqliteConnection(db_name={self.db_name}, path={self.path})"


class SqliteStoreClient:
    """Store client keeping one SQLite file per database under root."""

    def __init__(self, root: Path, timeout: float = 5.0):
        self.root = Path(root).expanduser()
        self._timeout = timeout

    def _path_for(self, db_name: str) -> Path:
        return self.root / f"{_SAFE_NAME.sub('_', db_name)}.db"

    def connect(self, db_name: str) -> SqliteConnection:
        path = self._path_for(db_name)
        with store_boundary():
            self.root.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(path), timeout=self._timeout)
            try:
                conn.executescript(DDL)
            finally:
                conn.close()
        return SqliteConnection(db_name, path, timeout=self._timeout)
