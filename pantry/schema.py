from __future__ import annotations

from enum import Enum

PURCHASE_AGGREGATES = "PurchaseAggregates"
PURCHASE_HISTORY = "PurchaseHistory"
CONSUMPTION_AGGREGATES = "ConsumptionAggregates"
CONSUMPTION_HISTORY = "ConsumptionHistory"
USERS = "Users"

# Logical collection -> sqlite table
COLLECTION_TABLES = {
    PURCHASE_AGGREGATES: "purchase_aggregates",
    PURCHASE_HISTORY: "purchase_history",
    CONSUMPTION_AGGREGATES: "consumption_aggregates",
    CONSUMPTION_HISTORY: "consumption_history",
    USERS: "users",
}

# Document field -> indexed column
INDEXED_FIELDS = {
    "branch": "branch",
    "descriptionNorm": "description_norm",
}


class AggregateKind(str, Enum):
    PURCHASE = "purchase"
    CONSUMPTION = "consumption"

    @property
    def aggregates(self) -> str:
        return PURCHASE_AGGREGATES if self is AggregateKind.PURCHASE else CONSUMPTION_AGGREGATES

    @property
    def history(self) -> str:
        return PURCHASE_HISTORY if self is AggregateKind.PURCHASE else CONSUMPTION_HISTORY

    @property
    def cumulative_field(self) -> str:
        return "totalStock" if self is AggregateKind.PURCHASE else "totalConsumed"

    @property
    def label(self) -> str:
        return "Purchases" if self is AggregateKind.PURCHASE else "Consumptions"


def _document_table(table: str) -> str:
    return f"""
CREATE TABLE IF NOT EXISTS {table} (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  branch TEXT,
  description_norm TEXT,
  date TEXT,                             -- ISO datetime (UTC), last write
  version INTEGER NOT NULL DEFAULT 0,    -- optimistic concurrency counter
  body TEXT NOT NULL                     -- JSON document
);

CREATE INDEX IF NOT EXISTS ix_{table}_branch_item ON {table} (branch, description_norm);
CREATE INDEX IF NOT EXISTS ix_{table}_branch_date ON {table} (branch, date DESC);
"""


# Every collection shares the same document-table shape:
# aggregates and history keep their JSON body, with branch/item/date lifted
# into columns so they can be filtered and ordered.
SCHEMA_SQL = "\n".join(_document_table(t) for t in COLLECTION_TABLES.values())
