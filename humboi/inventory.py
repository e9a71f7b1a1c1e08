"""
Inventory sample dataset.

Enum idents for colors, sizes and types, the inventory schema, one sample
item per (color, size, type), an order, inventory counts, and two
annotated correction transactions. Registered as the setup for the default
database; the marker is the inv/sku attribute.
"""

from itertools import product
from typing import Any, Iterable

from humboi.bootstrap import DatasetSetup, SetupStep
from humboi.stores import Snapshot

COLORS = ["red", "green", "blue", "yellow"]
SIZES = ["small", "medium", "large", "xlarge"]
TYPES = ["shirt", "pants", "dress", "hat"]

INVENTORY_MARKER = "inv/sku"


def make_idents(names: Iterable[str]) -> list[dict[str, str]]:
    return [{"db/ident": name} for name in names]


SCHEMA_1 = [
    {"db/ident": "inv/sku",
     "db/valueType": "db.type/string",
     "db/unique": "db.unique/identity",
     "db/cardinality": "db.cardinality/one"},
    {"db/ident": "inv/color",
     "db/valueType": "db.type/keyword",
     "db/cardinality": "db.cardinality/one"},
    {"db/ident": "inv/size",
     "db/valueType": "db.type/keyword",
     "db/cardinality": "db.cardinality/one"},
    {"db/ident": "inv/type",
     "db/valueType": "db.type/keyword",
     "db/cardinality": "db.cardinality/one"},
]

SAMPLE_DATA = [
    {"inv/color": color, "inv/size": size, "inv/type": type_, "inv/sku": f"SKU-{idx}"}
    for idx, (color, size, type_) in enumerate(product(COLORS, SIZES, TYPES))
]

ORDER_SCHEMA = [
    {"db/ident": "order/items",
     "db/valueType": "db.type/ref",
     "db/cardinality": "db.cardinality/many",
     "db/isComponent": True},
    {"db/ident": "item/id",
     "db/valueType": "db.type/ref",
     "db/cardinality": "db.cardinality/one"},
    {"db/ident": "item/count",
     "db/valueType": "db.type/long",
     "db/cardinality": "db.cardinality/one"},
]

ADD_ORDER = {
    "order/items": [
        {"item/id": ["inv/sku", "SKU-25"], "item/count": 10},
        {"item/id": ["inv/sku", "SKU-26"], "item/count": 20},
    ]
}

INVENTORY_COUNTS = [
    {"db/ident": "inv/count",
     "db/valueType": "db.type/long",
     "db/cardinality": "db.cardinality/one"},
]

INVENTORY_UPDATE = [
    ["db/add", ["inv/sku", "SKU-21"], "inv/count", 7],
    ["db/add", ["inv/sku", "SKU-22"], "inv/count", 7],
    ["db/add", ["inv/sku", "SKU-42"], "inv/count", 100],
]

RETRACT_INCORRECT = [
    ["db/retract", ["inv/sku", "SKU-22"], "inv/count", 7],
    ["db/add", "datomic.tx", "db/doc", "remove incorrect assertion"],
]

CORRECT_ENTRY = [
    ["db/add", ["inv/sku", "SKU-42"], "inv/count", 1000],
    ["db/add", "datomic.tx", "db/doc", "correct data entry error"],
]

INVENTORY_STEPS = (
    SetupStep("color-idents", make_idents(COLORS)),
    SetupStep("size-idents", make_idents(SIZES)),
    SetupStep("type-idents", make_idents(TYPES)),
    SetupStep("inventory-schema", SCHEMA_1),
    SetupStep("sample-data", SAMPLE_DATA),
    SetupStep("order-schema", ORDER_SCHEMA),
    SetupStep("add-order", [ADD_ORDER]),
    SetupStep("inventory-counts", INVENTORY_COUNTS),
    SetupStep("inventory-update", INVENTORY_UPDATE),
    SetupStep("retract-incorrect", RETRACT_INCORRECT),
    SetupStep("correct-entry", CORRECT_ENTRY),
)

INVENTORY_SETUP = DatasetSetup(marker=INVENTORY_MARKER, steps=INVENTORY_STEPS)


def get_schema(db: Snapshot) -> list[dict[str, Any]]:
    """Return a data representation of the user schema (no db/* attributes)."""
    return [
        attr for attr in db.attributes()
        if not attr["db/ident"].split("/", 1)[0].startswith("db")
    ]


def get_items_by_type(db: Snapshot, type_: str, selector: Iterable[Any] = ("*",)) -> list[dict[str, Any]]:
    """Return pull maps describing all items of the given type."""
    selector = list(selector)
    return [db.pull(eid, selector) for eid in db.find_entities("inv/type", type_)]
