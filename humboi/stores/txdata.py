"""
Expand transaction data into datoms against a snapshot.

Supported tx-data forms:

- Entity maps. The entity is chosen by, in order: "db/id" (entity id,
  tempid string, lookup ref or "datomic.tx"), "db/ident" (existing ident
  upserts), any attribute declared "db/unique": "db.unique/identity"
  (existing value upserts), else a new entity.
- Nested maps as values of reference attributes become their own entities.
- Lookup refs [attr, value], ident strings and tempids (already used as
  "db/id" earlier in the same tx-data) as values of reference
  attributes.
- List forms ["db/add", e, attr, value] and ["db/retract", e, attr, value].

Cardinality-one attributes replace the previous value. Asserting two
different values of one for the same entity in a single transaction fails
with OTHER. Asserting a fact that already holds and retracting one that
does not are no-ops, so re-applying the same tx-data produces no new datoms.
"""

from typing import Any, Optional

from humboi.errors import FailureCategory, anomaly
from humboi.stores.base import TX_ENTITY_NAMES, Datom, Snapshot, encode_value


class _Expansion:
    def __init__(self, db: Snapshot, tx: int):
        self.db = db
        self.tx = tx
        self.next_id = max(db.max_id(), tx) + 1
        self.tempids: dict[str, int] = {}
        self.pending_idents: dict[str, int] = {}
        self.pending_attrs: dict[str, dict[str, Any]] = {}
        # (e, a, encoded v) -> added
        self.ops: dict[tuple[int, str, str], Datom] = {}
        # (e, a) -> encoded value asserted for a cardinality-one attribute
        self.asserted_one: dict[tuple[int, str], str] = {}

    def new_id(self) -> int:
        eid = self.next_id
        self.next_id += 1
        return eid

    # -- schema lookups (db plus attributes defined earlier in this tx) --

    def attr_def(self, attr: str) -> dict[str, Any]:
        if attr in self.pending_attrs:
            return self.pending_attrs[attr]
        definition = self.db.attribute(attr)
        if definition is None:
            anomaly(FailureCategory.OTHER, f"Unknown attribute: {attr}")
        return definition

    def is_many(self, attr: str) -> bool:
        return self.attr_def(attr).get("db/cardinality") == "db.cardinality/many"

    def is_ref(self, attr: str) -> bool:
        return self.attr_def(attr).get("db/valueType") == "db.type/ref"

    def is_unique_identity(self, attr: str) -> bool:
        return self.attr_def(attr).get("db/unique") == "db.unique/identity"

    # -- entity resolution --

    def ident_eid(self, ident: str) -> Optional[int]:
        if ident in self.pending_idents:
            return self.pending_idents[ident]
        return self.db.entid(ident)

    def entity(self, ref: Any) -> int:
        """Resolve an entity position: id, tx name, ident, tempid or lookup ref."""
        if isinstance(ref, int) and not isinstance(ref, bool):
            return ref
        if isinstance(ref, str):
            if ref in TX_ENTITY_NAMES:
                return self.tx
            eid = self.ident_eid(ref)
            if eid is not None:
                return eid
            if ref not in self.tempids:
                self.tempids[ref] = self.new_id()
            return self.tempids[ref]
        if isinstance(ref, (list, tuple)) and len(ref) == 2:
            found = self.db.find_entities(ref[0], ref[1])
            if not found:
                anomaly(FailureCategory.OTHER, f"Unable to resolve entity: {list(ref)}")
            return found[0]
        anomaly(FailureCategory.OTHER, f"Invalid entity reference: {ref!r}")

    def ref_value(self, value: Any) -> int:
        if isinstance(value, dict):
            return self.add_map(value)
        if isinstance(value, str) and value not in TX_ENTITY_NAMES:
            eid = self.ident_eid(value)
            if eid is None:
                eid = self.tempids.get(value)
            if eid is None:
                anomaly(FailureCategory.OTHER, f"Unable to resolve ident: {value}")
            return eid
        return self.entity(value)

    # -- assertions --

    def _current(self, e: int, a: str) -> list[Datom]:
        return self.db.datoms(e=e, a=a)

    def add(self, e: int, a: str, v: Any) -> None:
        key = (e, a, encode_value(v))
        if not self.is_many(a):
            asserted = self.asserted_one.setdefault((e, a), key[2])
            if asserted != key[2]:
                anomaly(
                    FailureCategory.OTHER,
                    f"Conflicting datoms for {a} on entity {e}: {asserted} and {key[2]}",
                )
        if key in self.ops:
            if not self.ops[key].added:
                del self.ops[key]
            return
        existing = self._current(e, a)
        if any(encode_value(d.v) == key[2] for d in existing):
            return
        if not self.is_many(a):
            for d in existing:
                self.retract(e, a, d.v)
        self.ops[key] = Datom(e, a, v, self.tx, True)

    def retract(self, e: int, a: str, v: Any) -> None:
        key = (e, a, encode_value(v))
        if key in self.ops and self.ops[key].added:
            del self.ops[key]
            return
        if any(encode_value(d.v) == key[2] for d in self._current(e, a)):
            self.ops[key] = Datom(e, a, v, self.tx, False)

    def add_map(self, m: dict[str, Any]) -> int:
        if "db/valueType" in m and "db/ident" in m:
            self.pending_attrs[m["db/ident"]] = {k: v for k, v in m.items() if k != "db/id"}

        eid = self._map_entity(m)
        if "db/ident" in m:
            self.pending_idents[m["db/ident"]] = eid

        for attr, value in m.items():
            if attr == "db/id":
                continue
            values = value if self.is_many(attr) and isinstance(value, (list, set, tuple)) \
                and not self._is_lookup_ref(attr, value) else [value]
            for v in values:
                if self.is_ref(attr):
                    v = self.ref_value(v)
                self.add(eid, attr, v)
        return eid

    def _is_lookup_ref(self, attr: str, value: Any) -> bool:
        return (
            self.is_ref(attr)
            and isinstance(value, (list, tuple))
            and len(value) == 2
            and isinstance(value[0], str)
            and not isinstance(value[1], dict)
            and "/" in value[0]
            and self.db.attribute(value[0]) is not None
            and self.is_unique_identity(value[0])
        )

    def _map_entity(self, m: dict[str, Any]) -> int:
        if "db/id" in m:
            return self.entity(m["db/id"])
        if "db/ident" in m:
            eid = self.ident_eid(m["db/ident"])
            return eid if eid is not None else self.new_id()
        for attr, value in m.items():
            if self.is_unique_identity(attr):
                found = self.db.find_entities(attr, value)
                if found:
                    return found[0]
        return self.new_id()

    def add_list(self, form: list[Any]) -> None:
        if len(form) != 4 or form[0] not in ("db/add", "db/retract"):
            anomaly(FailureCategory.OTHER, f"Invalid tx form: {form!r}")
        op, e, a, v = form
        eid = self.entity(e)
        if self.is_ref(a):
            v = self.ref_value(v)
        if op == "db/add":
            self.add(eid, a, v)
        else:
            self.retract(eid, a, v)


def expand_tx_data(
    tx_data: list[Any],
    db: Snapshot,
    tx: int,
) -> tuple[list[Datom], dict[str, int]]:
    """
    Expand tx_data into datoms for transaction tx.

    Args:
        tx_data: Entity maps and list forms
        db: Snapshot the transaction applies to
        tx: Transaction id (also the transaction's entity id)

    Returns:
        (datoms, tempids) where tempids maps string tempids to new ids

    Raises:
        ClassifiedFailure: OTHER for malformed tx-data or unresolvable refs
    """
    if not isinstance(tx_data, (list, tuple)):
        anomaly(FailureCategory.OTHER, "tx_data must be a list")

    expansion = _Expansion(db, tx)
    for item in tx_data:
        if isinstance(item, dict):
            expansion.add_map(item)
        elif isinstance(item, (list, tuple)):
            expansion.add_list(list(item))
        else:
            anomaly(FailureCategory.OTHER, f"Invalid tx-data item: {item!r}")
    return list(expansion.ops.values()), dict(expansion.tempids)
