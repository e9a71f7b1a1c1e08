"""
Store client interface for the transactional data service.

This module defines the protocol any store backend must implement, so the
bootstrap coordinator is decoupled from the actual storage engine.

Backends hold facts as datoms (entity, attribute, value, tx, added). A
snapshot is the set of asserted facts as of one transaction basis; it never
changes after creation.

Implementations:
- MemoryStoreClient: in-process, for tests and dry runs
- SqliteStoreClient: one SQLite file per database
- BigQueryStoreClient: one BigQuery dataset per database
"""

import json
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Optional, Protocol, runtime_checkable

from humboi.errors import ClassifiedFailure, classify_exception

# Attributes every store understands without a schema transaction
BUILTIN_ATTRIBUTES: dict[str, dict[str, Any]] = {
    "db/ident": {"db/valueType": "db.type/keyword", "db/cardinality": "db.cardinality/one",
                 "db/unique": "db.unique/identity"},
    "db/valueType": {"db/valueType": "db.type/keyword", "db/cardinality": "db.cardinality/one"},
    "db/cardinality": {"db/valueType": "db.type/keyword", "db/cardinality": "db.cardinality/one"},
    "db/unique": {"db/valueType": "db.type/keyword", "db/cardinality": "db.cardinality/one"},
    "db/isComponent": {"db/valueType": "db.type/boolean", "db/cardinality": "db.cardinality/one"},
    "db/doc": {"db/valueType": "db.type/string", "db/cardinality": "db.cardinality/one"},
}

TX_ENTITY_NAMES = frozenset({"datomic.tx", "db/tx"})


@dataclass(frozen=True)
class Datom:
    """One fact."""
    e: int
    a: str
    v: Any
    tx: int
    added: bool = True


@dataclass
class TxResult:
    """Result of a transact() call."""
    tx: int
    basis_before: int
    datoms: list[Datom] = field(default_factory=list)
    tempids: dict[str, int] = field(default_factory=dict)


def encode_value(value: Any) -> str:
    """Canonical JSON encoding used for value storage and equality."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def decode_value(raw: str) -> Any:
    return json.loads(raw)


def _datom_order(d: Datom) -> tuple:
    # numbers in numeric order, everything else by encoding
    if isinstance(d.v, (int, float)) and not isinstance(d.v, bool):
        return (d.a, 0, d.v, "")
    return (d.a, 1, 0, encode_value(d.v))


@contextmanager
def store_boundary() -> Iterator[None]:
    """
    Map exceptions raised by a backend library into ClassifiedFailure.

    - ClassifiedFailure: already classified, propagate
    - anything else: classify_exception(), original kept as cause
    """
    try:
        yield
    except ClassifiedFailure:
        raise
    except Exception as e:
        raise classify_exception(e) from e


class Snapshot(ABC):
    """
    Immutable view of a database as of one basis transaction.

    Subclasses provide _datoms(); everything else is derived from it.
    """

    def __init__(self, basis_t: int):
        self.basis_t = basis_t

    @abstractmethod
    def _datoms(
        self,
        e: Optional[int] = None,
        a: Optional[str] = None,
        v: Any = None,
    ) -> list[Datom]:
        """Return currently asserted datoms matching the given components."""
        ...

    @abstractmethod
    def max_id(self) -> int:
        """Highest entity or transaction id in use."""
        ...

    def datoms(self, e: Optional[int] = None, a: Optional[str] = None, v: Any = None) -> list[Datom]:
        return self._datoms(e=e, a=a, v=v)

    def entid(self, ident: str) -> Optional[int]:
        """Resolve an ident to its entity id."""
        found = self._datoms(a="db/ident", v=ident)
        return found[0].e if found else None

    def has_ident(self, ident: str) -> bool:
        return self.entid(ident) is not None

    def find_entities(self, attr: str, value: Any) -> list[int]:
        """Entity ids with attr asserted to value, in id order."""
        return sorted({d.e for d in self._datoms(a=attr, v=value)})

    def attribute(self, ident: str) -> Optional[dict[str, Any]]:
        """Attribute definition for ident, or None if not installed."""
        if ident in BUILTIN_ATTRIBUTES:
            return {"db/ident": ident, **BUILTIN_ATTRIBUTES[ident]}
        eid = self.entid(ident)
        if eid is None:
            return None
        entity = self._entity(eid)
        if "db/valueType" not in entity:
            return None
        return entity

    def attributes(self) -> list[dict[str, Any]]:
        """All installed (non-builtin) attribute definitions."""
        eids = sorted({d.e for d in self._datoms(a="db/valueType")})
        return [self._entity(eid) for eid in eids]

    def _entity(self, eid: int) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for d in sorted(self._datoms(e=eid), key=_datom_order):
            if self._is_many(d.a):
                result.setdefault(d.a, []).append(d.v)
            else:
                result[d.a] = d.v
        return result

    def _is_many(self, attr: str) -> bool:
        if attr in BUILTIN_ATTRIBUTES:
            return False
        eid = self.entid(attr)
        if eid is None:
            return False
        found = self._datoms(e=eid, a="db/cardinality")
        return bool(found) and found[0].v == "db.cardinality/many"

    def _is_ref(self, attr: str) -> bool:
        definition = self.attribute(attr)
        return bool(definition) and definition.get("db/valueType") == "db.type/ref"

    def resolve(self, ref: Any) -> Optional[int]:
        """Resolve an entity id, ident or lookup ref [attr, value] to an id."""
        if isinstance(ref, bool):
            return None
        if isinstance(ref, int):
            return ref
        if isinstance(ref, str):
            return self.entid(ref)
        if isinstance(ref, (list, tuple)) and len(ref) == 2:
            found = self.find_entities(ref[0], ref[1])
            return found[0] if found else None
        return None

    def pull(self, ref: Any, selector: Iterable[Any] = ("*",)) -> dict[str, Any]:
        """
        Pull a map of attributes for an entity.

        Selector entries are attribute names, "*" for all attributes, or a
        {attr: sub_selector} map to pull through a reference attribute.
        Missing entities pull as an empty map.
        """
        eid = self.resolve(ref)
        if eid is None:
            return {}
        entity = self._entity(eid)
        if not entity:
            return {}

        result: dict[str, Any] = {}
        for item in selector:
            if item == "*":
                result["db/id"] = eid
                result.update(entity)
            elif isinstance(item, dict):
                for attr, sub in item.items():
                    if attr not in entity:
                        continue
                    value = entity[attr]
                    if isinstance(value, list):
                        result[attr] = [self.pull(v, sub) for v in value]
                    else:
                        result[attr] = self.pull(value, sub)
            elif item == "db/id":
                result["db/id"] = eid
            elif item in entity:
                result[item] = entity[item]
        return result


@runtime_checkable
class StoreConnection(Protocol):
    """Connection bound to one named database."""

    db_name: str

    def db(self) -> Snapshot:
        """Current snapshot of the database."""
        ...

    def transact(self, tx_data: list[Any]) -> TxResult:
        """
        Apply tx_data as one atomic transaction.

        Returns only once the transaction is durable and visible to
        subsequent db() calls.
        """
        ...


@runtime_checkable
class StoreClient(Protocol):
    """Entry point to a store backend."""

    def connect(self, db_name: str) -> StoreConnection:
        """Connect to db_name, creating the database if it does not exist."""
        ...
