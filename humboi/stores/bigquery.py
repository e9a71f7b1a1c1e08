"""
BigQuery store backend.

Each database is a BigQuery dataset holding one append-only datoms table.
A transaction is one multi-statement query: it checks that the table has
not moved past the basis the tx-data was expanded against, then inserts the
datoms and commits. A writer that lost a race gets BUSY and is retried
against a fresh snapshot, so concurrent bootstraps never share tx or entity
ids. The datoms become visible together once the query job completes.

Configuration:
- project: GCP project (defaults to the client's project)
- dataset_prefix: prepended to the sanitized database name

google-api-core failures are mapped to failure categories at this boundary
(see humboi.errors.classify_exception).
"""

import logging
import re
from typing import Any, Optional

from google.api_core import exceptions as gexc
from google.cloud import bigquery

from humboi.errors import FailureCategory, anomaly
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

DATOMS_TABLE = "datoms"

DATOM_SCHEMA = [
    bigquery.SchemaField("e", "INT64", mode="REQUIRED"),
    bigquery.SchemaField("a", "STRING", mode="REQUIRED"),
    bigquery.SchemaField("v", "STRING", mode="REQUIRED"),
    bigquery.SchemaField("tx", "INT64", mode="REQUIRED"),
    bigquery.SchemaField("added", "BOOL", mode="REQUIRED"),
]

_DATASET_NAME = re.compile(r"[^A-Za-z0-9_]")

BASIS_MOVED = "humboi: datoms table moved past the transaction basis"

# Insert only if nobody committed since the basis the tx-data was expanded
# against. Concurrent commits on the same table abort all but one.
COMMIT_SQL = """
BEGIN TRANSACTION;
IF (SELECT IFNULL(MAX(tx), 0) FROM `{table}`) != @basis THEN
  RAISE USING MESSAGE = '{basis_moved}';
END IF;
INSERT INTO `{table}` (e, a, v, tx, added)
SELECT e, a, v, tx, added FROM UNNEST(@rows);
COMMIT TRANSACTION;
"""

_WRITE_CONFLICT_MARKERS = (BASIS_MOVED, "concurrent update")


def _is_write_conflict(exc: Exception) -> bool:
    text = str(exc)
    return any(marker in text for marker in _WRITE_CONFLICT_MARKERS)


def _row_param(d: Datom) -> bigquery.StructQueryParameter:
    return bigquery.StructQueryParameter(
        None,
        bigquery.ScalarQueryParameter("e", "INT64", d.e),
        bigquery.ScalarQueryParameter("a", "STRING", d.a),
        bigquery.ScalarQueryParameter("v", "STRING", encode_value(d.v)),
        bigquery.ScalarQueryParameter("tx", "INT64", d.tx),
        bigquery.ScalarQueryParameter("added", "BOOL", d.added),
    )


def dataset_name_for(db_name: str, prefix: str = "") -> str:
    """BigQuery dataset names allow letters, digits and underscores only."""
    return f"{prefix}{_DATASET_NAME.sub('_', db_name)}"


class BigQuerySnapshot(Snapshot):
    """
    Snapshot over the datoms table filtered to basis_t.

    Query results are memoized per snapshot; the basis never moves, so a
    repeated lookup always returns the same answer.
    """

    def __init__(self, bq_client, table_id: str, basis_t: int, max_id: int):
        super().__init__(basis_t)
        self._bq = bq_client
        self._table_id = table_id
        self._max_id = max_id
        self._memo: dict[tuple, list[Datom]] = {}

    def _datoms(self, e: Optional[int] = None, a: Optional[str] = None, v: Any = None) -> list[Datom]:
        encoded = encode_value(v) if v is not None else None
        key = (e, a, encoded)
        if key in self._memo:
            return self._memo[key]

        clauses = ["tx <= @basis"]
        params = [bigquery.ScalarQueryParameter("basis", "INT64", self.basis_t)]
        if e is not None:
            clauses.append("e = @e")
            params.append(bigquery.ScalarQueryParameter("e", "INT64", e))
        if a is not None:
            clauses.append("a = @a")
            params.append(bigquery.ScalarQueryParameter("a", "STRING", a))
        if encoded is not None:
            clauses.append("v = @v")
            params.append(bigquery.ScalarQueryParameter("v", "STRING", encoded))

        sql = (
            f"SELECT e, a, v, MAX(tx) AS tx FROM `{self._table_id}` "
            f"WHERE {' AND '.join(clauses)} "
            "GROUP BY e, a, v HAVING COUNTIF(added) > COUNTIF(NOT added)"
        )
        job_config = bigquery.QueryJobConfig(query_parameters=params)
        with store_boundary():
            rows = self._bq.query(sql, job_config=job_config).result()
            datoms = [Datom(row["e"], row["a"], decode_value(row["v"]), row["tx"], True) for row in rows]

        self._memo[key] = datoms
        return datoms

    def max_id(self) -> int:
        return self._max_id


class BigQueryConnection:
    """Connection to one BigQuery-backed database."""

    def __init__(self, db_name: str, bq_client, table_id: str):
        self.db_name = db_name
        self._bq = bq_client
        self.table_id = table_id

    def _read_basis(self) -> tuple[int, int]:
        sql = f"SELECT MAX(tx) AS basis, MAX(e) AS max_e FROM `{self.table_id}`"
        with store_boundary():
            rows = list(self._bq.query(sql).result())
        if not rows:
            return 0, 0
        basis = rows[0]["basis"] or 0
        return basis, max(basis, rows[0]["max_e"] or 0)

    def db(self) -> BigQuerySnapshot:
        basis, max_id = self._read_basis()
        return BigQuerySnapshot(self._bq, self.table_id, basis, max_id)

    def transact(self, tx_data: list[Any]) -> TxResult:
        before = self.db()
        tx = before.max_id() + 1
        datoms, tempids = expand_tx_data(tx_data, before, tx)

        if datoms:
            job_config = bigquery.QueryJobConfig(query_parameters=[
                bigquery.ScalarQueryParameter("basis", "INT64", before.basis_t),
                bigquery.ArrayQueryParameter("rows", "STRUCT", [_row_param(d) for d in datoms]),
            ])
            sql = COMMIT_SQL.format(table=self.table_id, basis_moved=BASIS_MOVED)
            with store_boundary():
                try:
                    self._bq.query(sql, job_config=job_config).result()
                except gexc.GoogleAPICallError as e:
                    if _is_write_conflict(e):
                        anomaly(
                            FailureCategory.BUSY,
                            f"Concurrent write to {self.table_id} since basis {before.basis_t}",
                            e,
                        )
                    raise
            logger.debug(f"Inserted {len(datoms)} datoms into {self.table_id} (tx {tx})")

        return TxResult(tx=tx, basis_before=before.basis_t, datoms=datoms, tempids=tempids)

    def __repr__(self) -> str:
        return f"BigQueryConnection(db_name={self.db_name}, table={self.table_id})"


class BigQueryStoreClient:
    """Store client mapping databases to BigQuery datasets."""

    def __init__(
        self,
        bq_client=None,
        project: Optional[str] = None,
        dataset_prefix: str = "",
        location: str = "US",
    ):
        if bq_client is None:
            with store_boundary():
                bq_client = bigquery.Client(project=project)
        self._bq = bq_client
        self.project = project or bq_client.project
        self.dataset_prefix = dataset_prefix
        self.location = location

    def connect(self, db_name: str) -> BigQueryConnection:
        dataset_id = f"{self.project}.{dataset_name_for(db_name, self.dataset_prefix)}"
        table_id = f"{dataset_id}.{DATOMS_TABLE}"

        dataset = bigquery.Dataset(dataset_id)
        dataset.location = self.location
        dataset.description = f"humboi database {db_name}"
        table = bigquery.Table(table_id, schema=DATOM_SCHEMA)
        table.description = "Append-only datom log"

        with store_boundary():
            self._bq.create_dataset(dataset, exists_ok=True)
            self._bq.create_table(table, exists_ok=True)
        return BigQueryConnection(db_name, self._bq, table_id)
