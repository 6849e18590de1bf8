from __future__ import annotations

from typing import Any, Iterable

from pantry.utils import normalize_description

# Quantities are kept to 3 decimals (grams / millilitres of a kg / litre).
QTY_DECIMALS = 3


def as_number(v: Any) -> float:
    try:
        f = float(v)
    except (TypeError, ValueError):
        return 0.0
    return f if f == f else 0.0  # NaN -> 0


def round_qty(v: Any) -> float:
    return round(as_number(v), QTY_DECIMALS)


def matching_rows(rows: Iterable[dict], description: str) -> list[dict]:
    """Rows of one branch whose item matches `description` once normalized."""
    desc = normalize_description(description)
    if not desc:
        return []
    return [
        r
        for r in rows
        if normalize_description(r.get("description")) == desc or r.get("descriptionNorm") == desc
    ]


def purchased_total(purchase_rows: Iterable[dict], description: str) -> float:
    """
    Cumulative purchased quantity for an item.

    Aggregates are already cumulative, so duplicates are reconciled with max,
    never a sum. A row without `totalStock` counts its last `qty`.
    """
    matches = matching_rows(purchase_rows, description)
    total = max(
        (as_number(r["totalStock"] if r.get("totalStock") is not None else r.get("qty")) for r in matches),
        default=0.0,
    )
    return round_qty(total)


def consumed_total(consumption_rows: Iterable[dict], description: str) -> float:
    matches = matching_rows(consumption_rows, description)
    total = max(
        (
            as_number(r["totalConsumed"] if r.get("totalConsumed") is not None else r.get("consumptionQty"))
            for r in matches
        ),
        default=0.0,
    )
    return round_qty(total)


def available_stock(purchased: float, consumed: float) -> float:
    return max(0.0, round_qty(as_number(purchased) - as_number(consumed)))


def stock_position(purchase_rows: list[dict], consumption_rows: list[dict], description: str) -> dict:
    """Purchased / consumed / available for one item; what the forms preview."""
    p = purchased_total(purchase_rows, description)
    c = consumed_total(consumption_rows, description)
    return {"purchased": p, "consumed": c, "available": available_stock(p, c)}


def item_names(*row_sets: Iterable[dict]) -> list[str]:
    names = set()
    for rows in row_sets:
        for r in rows:
            if r.get("description"):
                names.add(str(r["description"]))
    return sorted(names)
