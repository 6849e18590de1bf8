from __future__ import annotations

import logging
import math
from datetime import date, datetime
from typing import Any, Callable, Iterable, Optional, Union

from pantry.config import BRANCHES
from pantry.errors import (
    DocumentNotFoundError,
    IndexUnavailableError,
    InsufficientStockError,
    ValidationError,
)
from pantry.permissions import Permission, require, require_branch
from pantry.schema import AggregateKind
from pantry.services.inventory import (
    as_number,
    available_stock,
    consumed_total,
    item_names,
    purchased_total,
    round_qty,
)
from pantry.services.users import Session
from pantry.store import DocumentStore
from pantry.utils import normalize_description

logger = logging.getLogger(__name__)

FIELD_LABELS = {
    "description": "Item",
    "vendor": "Vendor",
    "billNo": "Bill No",
    "billAmount": "Bill Amount",
    "qty": "Quantity",
    "mou": "MOU",
    "expiryDate": "Expiry date",
}

# Admin inline edit: display fields only, never the running totals.
EDITABLE_FIELDS = {
    AggregateKind.PURCHASE: frozenset({"description", "vendor", "billNo", "billAmount", "mou", "expiryDate"}),
    AggregateKind.CONSUMPTION: frozenset({"description"}),
}


def _require_text(value: Any, label: str) -> str:
    s = "" if value is None else str(value).strip()
    if not s:
        raise ValidationError(f"{label} is required.")
    return s


def _parse_number(value: Any, label: str) -> float:
    if value is None or str(value).strip() == "":
        raise ValidationError(f"{label} is required.")
    try:
        n = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a number.")
    if not math.isfinite(n):
        raise ValidationError(f"{label} must be a number.")
    return n


def _parse_quantity(value: Any) -> float:
    n = round_qty(_parse_number(value, FIELD_LABELS["qty"]))
    if n <= 0:
        raise ValidationError("Quantity must be > 0.")
    return n


def _parse_bill_amount(value: Any) -> float:
    n = _parse_number(value, FIELD_LABELS["billAmount"])
    if n < 0:
        raise ValidationError("Bill Amount cannot be negative.")
    return n


def parse_expiry(value: Union[str, date, None], today: date) -> str:
    """ISO date string, or "" when no expiry. Only days after `today` are accepted."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return ""
    if isinstance(value, datetime):
        d = value.date()
    elif isinstance(value, date):
        d = value
    else:
        try:
            d = date.fromisoformat(str(value).strip()[:10])
        except ValueError:
            raise ValidationError("Expiry date must be a valid date (YYYY-MM-DD).")
    if d <= today:
        raise ValidationError("Expiry date must be a future date.")
    return d.isoformat()


def _most_recent(rows: Iterable[dict]) -> Optional[dict]:
    return max(rows, key=lambda r: (str(r.get("date") or ""), int(r.get("id") or 0)), default=None)


class LedgerEngine:
    """
    Running purchase / consumption balances per (branch, item).

    One aggregate row per item and branch in each of the two aggregate
    collections, mutated in place; every accepted change is also appended to
    the matching history collection. The read-compute-write of each operation
    runs inside one store transaction and writes back with the version it read,
    so a concurrent change makes the call fail instead of being overwritten.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        branches: Iterable[str] = BRANCHES,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.store = store
        self.branches = list(branches)
        self.today = today

    # -------------------------
    # Guards
    # -------------------------

    def _check_branch(self, session: Session, branch: Optional[str]) -> str:
        branch = str(branch or "").strip()
        if not branch:
            raise ValidationError("Please select a branch first.")
        if branch not in self.branches:
            raise ValidationError(f"Unknown branch: {branch}")
        require_branch(session.role, session.branch, branch)
        return branch

    # -------------------------
    # Lookup
    # -------------------------

    def find_one_by_item(self, kind: AggregateKind, branch: str, description_norm: str) -> Optional[dict]:
        """
        The aggregate for (branch, item), newest first if duplicates exist.

        Tries the indexed lookup on descriptionNorm; when that index is
        unavailable or finds nothing (rows written before descriptionNorm
        existed), scans the branch and compares normalized descriptions.
        """
        collection = AggregateKind(kind).aggregates
        try:
            found = self.store.find(collection, {"branch": branch, "descriptionNorm": description_norm})
        except IndexUnavailableError as e:
            logger.warning("Indexed lookup failed, scanning branch %s instead: %s", branch, e)
            found = []
        if found:
            return _most_recent(found)

        scanned = [
            d
            for d in self.store.find(collection, {"branch": branch})
            if normalize_description(d.get("description")) == description_norm
        ]
        return _most_recent(scanned)

    # -------------------------
    # Writes
    # -------------------------

    def record_purchase(
        self,
        session: Session,
        *,
        branch: str,
        description: str,
        vendor: str,
        bill_no: str,
        bill_amount: Union[str, float],
        qty: Union[str, float],
        mou: str,
        expiry_date: Union[str, date, None] = None,
    ) -> dict:
        require(session.role, Permission.RECORD)
        branch = self._check_branch(session, branch)

        description = _require_text(description, FIELD_LABELS["description"])
        vendor = _require_text(vendor, FIELD_LABELS["vendor"])
        bill_no = _require_text(bill_no, FIELD_LABELS["billNo"])
        bill_amount = _parse_bill_amount(bill_amount)
        qty = _parse_quantity(qty)
        mou = _require_text(mou, FIELD_LABELS["mou"])
        expiry = parse_expiry(expiry_date, self.today())

        norm = normalize_description(description)
        kind = AggregateKind.PURCHASE

        with self.store.transaction():
            existing = self.find_one_by_item(kind, branch, norm)
            old_stock = purchased_total(self._branch_rows(kind, branch), norm)
            new_total = round_qty(old_stock + qty)

            fields = {
                "branch": branch,
                "description": description,
                "descriptionNorm": norm,
                "vendor": vendor,
                "billNo": bill_no,
                "billAmount": bill_amount,
                "qty": qty,
                "expiryDate": expiry,
                "mou": mou,
                "oldStock": old_stock,
                "totalStock": new_total,
                "date": self.store.server_timestamp(),
            }

            if existing:
                doc_id = int(existing["id"])
                self.store.update(kind.aggregates, doc_id, fields, expected_version=existing["version"])
            else:
                doc_id = self.store.insert(kind.aggregates, fields)

            self.store.insert(kind.history, {**fields, "action": "purchase"})

        logger.info(
            "purchase %s/%s qty=%s total=%s -> %s", branch, norm, qty, old_stock, new_total
        )
        return self.store.get(kind.aggregates, doc_id)

    def record_consumption(
        self,
        session: Session,
        *,
        branch: str,
        description: str,
        qty: Union[str, float],
    ) -> dict:
        require(session.role, Permission.RECORD)
        branch = self._check_branch(session, branch)

        description = _require_text(description, FIELD_LABELS["description"])
        qty = _parse_quantity(qty)

        norm = normalize_description(description)
        kind = AggregateKind.CONSUMPTION

        with self.store.transaction():
            existing = self.find_one_by_item(kind, branch, norm)

            purchased = purchased_total(self._branch_rows(AggregateKind.PURCHASE, branch), norm)
            consumed = consumed_total(self._branch_rows(kind, branch), norm)
            available = available_stock(purchased, consumed)

            if qty > available:
                raise InsufficientStockError(description, qty, available)

            total = round_qty(consumed + qty)
            fields = {
                "branch": branch,
                "description": description,
                "descriptionNorm": norm,
                "consumptionQty": qty,
                "lastConsumptionQty": qty,
                "totalConsumed": total,
                "balance": available_stock(purchased, total),
                "date": self.store.server_timestamp(),
            }

            if existing:
                doc_id = int(existing["id"])
                self.store.update(kind.aggregates, doc_id, fields, expected_version=existing["version"])
            else:
                doc_id = self.store.insert(kind.aggregates, fields)

            self.store.insert(kind.history, {**fields, "action": "consume"})

        logger.info("consume %s/%s qty=%s balance=%s", branch, norm, qty, fields["balance"])
        return self.store.get(kind.aggregates, doc_id)

    def update_aggregate(
        self,
        session: Session,
        *,
        branch: str,
        kind: Union[AggregateKind, str],
        doc_id: int,
        updates: dict,
        expected_version: Optional[int] = None,
    ) -> dict:
        """Admin inline edit of the display fields of one aggregate row."""
        require(session.role, Permission.EDIT)
        branch = self._check_branch(session, branch)
        kind = AggregateKind(kind)

        editable = EDITABLE_FIELDS[kind]
        locked = sorted(set(updates) - editable)
        if locked:
            raise ValidationError(f"Field(s) cannot be edited: {', '.join(locked)}")

        with self.store.transaction():
            doc = self._get_in_branch(kind, branch, doc_id)

            clean: dict = {}
            for field, value in updates.items():
                if field == "description":
                    d = _require_text(value, FIELD_LABELS[field])
                    current = doc.get("descriptionNorm") or normalize_description(doc.get("description"))
                    if normalize_description(d) != current:
                        raise ValidationError(
                            "Item name can only change in case or spacing. Record a new item instead."
                        )
                    clean["description"] = d
                    clean["descriptionNorm"] = current
                elif field == "billAmount":
                    clean[field] = _parse_bill_amount(value)
                elif field == "expiryDate":
                    clean[field] = parse_expiry(value, self.today())
                else:
                    clean[field] = _require_text(value, FIELD_LABELS[field])

            if not clean:
                raise ValidationError("Nothing to update.")

            clean["date"] = self.store.server_timestamp()
            version = doc["version"] if expected_version is None else expected_version
            self.store.update(kind.aggregates, int(doc_id), clean, expected_version=version)

        logger.info("edit %s row %s in %s: %s", kind.value, doc_id, branch, sorted(updates))
        return self.store.get(kind.aggregates, int(doc_id))

    def delete_aggregate(
        self,
        session: Session,
        *,
        branch: str,
        kind: Union[AggregateKind, str],
        doc_id: int,
    ) -> None:
        """Irreversible. History is left as it is."""
        require(session.role, Permission.DELETE)
        branch = self._check_branch(session, branch)
        kind = AggregateKind(kind)

        with self.store.transaction():
            self._get_in_branch(kind, branch, doc_id)
            self.store.delete(kind.aggregates, int(doc_id))
        logger.info("deleted %s row %s in %s", kind.value, doc_id, branch)

    def merge_duplicates(
        self,
        session: Session,
        *,
        branch: str,
        kind: Union[AggregateKind, str],
    ) -> list[dict]:
        """
        Collapse aggregate rows that share a normalized description.

        Per group: the winning running total is the max of the rows' totals
        (rows are already cumulative), display fields come from the newest
        row, one replacement row is inserted and every original is copied to
        history as "merged" and deleted. Each group commits on its own, so an
        interrupted run leaves some groups merged and others untouched.
        """
        require(session.role, Permission.MERGE)
        branch = self._check_branch(session, branch)
        kind = AggregateKind(kind)

        groups: dict[str, list[dict]] = {}
        for d in self.store.find(kind.aggregates, {"branch": branch}):
            groups.setdefault(normalize_description(d.get("description")), []).append(d)

        results = []
        for norm, rows in groups.items():
            if len(rows) <= 1:
                continue
            results.append(self._merge_group(kind, branch, norm, rows))

        logger.info("merge %s in %s: %d group(s) merged", kind.value, branch, len(results))
        return results

    def _merge_group(self, kind: AggregateKind, branch: str, norm: str, rows: list[dict]) -> dict:
        total = round_qty(max(as_number(r.get(kind.cumulative_field)) for r in rows))
        last = _most_recent(rows)

        with self.store.transaction():
            now = self.store.server_timestamp()
            if kind is AggregateKind.PURCHASE:
                replacement = {
                    "branch": branch,
                    "description": last.get("description"),
                    "descriptionNorm": norm,
                    "vendor": last.get("vendor") or "",
                    "billNo": last.get("billNo") or "",
                    "billAmount": as_number(last.get("billAmount")),
                    "qty": as_number(last.get("qty")),
                    "expiryDate": last.get("expiryDate") or "",
                    "mou": last.get("mou") or "",
                    "oldStock": max(0.0, round_qty(total - as_number(last.get("qty")))),
                    "totalStock": total,
                    "date": now,
                }
            else:
                purchased = purchased_total(self._branch_rows(AggregateKind.PURCHASE, branch), norm)
                replacement = {
                    "branch": branch,
                    "description": last.get("description"),
                    "descriptionNorm": norm,
                    "consumptionQty": as_number(last.get("consumptionQty")),
                    "lastConsumptionQty": as_number(last.get("lastConsumptionQty")),
                    "totalConsumed": total,
                    "balance": available_stock(purchased, total),
                    "date": now,
                }

            new_id = self.store.insert(kind.aggregates, replacement)
            for r in rows:
                snapshot = {k: v for k, v in r.items() if k not in ("id", "version")}
                snapshot.update({"sourceId": int(r["id"]), "movedAt": now, "action": "merged"})
                self.store.insert(kind.history, snapshot)
                self.store.delete(kind.aggregates, int(r["id"]))

        return {
            "id": new_id,
            "description": replacement["description"],
            "descriptionNorm": norm,
            "merged": len(rows),
            "total": total,
        }

    def _branch_rows(self, kind: AggregateKind, branch: str) -> list[dict]:
        # Totals are the max over every row for the item, duplicates included.
        return self.store.find(kind.aggregates, {"branch": branch})

    def _get_in_branch(self, kind: AggregateKind, branch: str, doc_id: int) -> dict:
        doc = self.store.get(kind.aggregates, int(doc_id))
        if doc.get("branch") != branch:
            raise DocumentNotFoundError(kind.aggregates, int(doc_id))
        return doc

    # -------------------------
    # Reads
    # -------------------------

    def list_aggregates(self, branch: str, kind: Union[AggregateKind, str]) -> list[dict]:
        return self.store.find(AggregateKind(kind).aggregates, {"branch": branch})

    def list_history(self, branch: str, kind: Union[AggregateKind, str], *, limit: int = 50) -> list[dict]:
        return self.store.find(AggregateKind(kind).history, {"branch": branch}, limit=limit)

    def get_purchased_total(self, branch: str, description: str) -> float:
        return purchased_total(self.list_aggregates(branch, AggregateKind.PURCHASE), description)

    def get_consumed_total(self, branch: str, description: str) -> float:
        return consumed_total(self.list_aggregates(branch, AggregateKind.CONSUMPTION), description)

    def get_available(self, branch: str, description: str) -> float:
        return available_stock(
            self.get_purchased_total(branch, description),
            self.get_consumed_total(branch, description),
        )

    def item_names(self, branch: str) -> list[str]:
        return item_names(
            self.list_aggregates(branch, AggregateKind.PURCHASE),
            self.list_aggregates(branch, AggregateKind.CONSUMPTION),
        )
