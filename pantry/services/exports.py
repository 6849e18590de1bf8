from __future__ import annotations

import csv
import io
from datetime import datetime
from typing import Optional

import pandas as pd

from pantry.permissions import Permission, require
from pantry.services.inventory import consumed_total, purchased_total, available_stock
from pantry.services.users import Session

PURCHASE_COLUMNS = {
    "date": "Date",
    "branch": "Branch",
    "description": "Item",
    "vendor": "Vendor",
    "billNo": "BillNo",
    "billAmount": "BillAmount",
    "qty": "Qty_Last",
    "mou": "MOU",
    "expiryDate": "Expiry",
    "oldStock": "OldStock",
    "totalStock": "TotalStock",
}

CONSUMPTION_COLUMNS = {
    "date": "Date",
    "branch": "Branch",
    "description": "Item",
    "lastConsumed": "LastConsumed",
    "totalConsumed": "TotalConsumed",
    "balance": "Balance",
}

EXPORT_KINDS = ("all", "purchase", "consumption")


def _format_date(v) -> str:
    if not v or v != v:  # None, "" or NaN
        return ""
    try:
        return datetime.fromisoformat(str(v)).strftime("%Y-%m-%d %H:%M:%S")
    except ValueError:
        return str(v)


def purchases_frame(purchase_rows: list[dict]) -> pd.DataFrame:
    df = pd.DataFrame(purchase_rows, columns=list(PURCHASE_COLUMNS))
    df["date"] = df["date"].map(_format_date)
    for col in ["oldStock", "totalStock"]:
        df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0)
    return df.rename(columns=PURCHASE_COLUMNS)


def consumptions_frame(consumption_rows: list[dict], purchase_rows: Optional[list[dict]] = None) -> pd.DataFrame:
    """
    Consumption table for export. `Balance` falls back to the live available
    stock for rows that never stored one.
    """
    purchase_rows = purchase_rows or []
    out = []
    for c in consumption_rows:
        last = c.get("consumptionQty", c.get("lastConsumptionQty"))
        total = c.get("totalConsumed", c.get("consumptionQty"))
        balance = c.get("balance")
        if balance is None:
            balance = available_stock(
                purchased_total(purchase_rows, c.get("description")),
                consumed_total(consumption_rows, c.get("description")),
            )
        out.append(
            {
                "date": _format_date(c.get("date")),
                "branch": c.get("branch"),
                "description": c.get("description"),
                "lastConsumed": last if last is not None else 0,
                "totalConsumed": total if total is not None else 0,
                "balance": balance,
            }
        )
    df = pd.DataFrame(out, columns=list(CONSUMPTION_COLUMNS))
    return df.rename(columns=CONSUMPTION_COLUMNS)


def export_csv(purchase_rows: list[dict], consumption_rows: list[dict], kind: str = "all") -> str:
    """One CSV with a titled section per table, every cell quoted."""
    if kind not in EXPORT_KINDS:
        raise ValueError(f"Invalid export kind. Use one of: {', '.join(EXPORT_KINDS)}.")

    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    if kind in ("purchase", "all"):
        writer.writerow(["PURCHASES"])
        purchases_frame(purchase_rows).to_csv(buf, index=False, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow([])
    if kind in ("consumption", "all"):
        writer.writerow(["CONSUMPTIONS"])
        consumptions_frame(consumption_rows, purchase_rows).to_csv(
            buf, index=False, quoting=csv.QUOTE_ALL, lineterminator="\n"
        )
    return buf.getvalue()


def export_xlsx(session: Session, purchase_rows: list[dict], consumption_rows: list[dict]) -> bytes:
    require(session.role, Permission.EXPORT_XLSX)

    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as xw:
        purchases_frame(purchase_rows).to_excel(xw, sheet_name="Purchases", index=False)
        consumptions_frame(consumption_rows, purchase_rows).to_excel(xw, sheet_name="Consumptions", index=False)
    return buf.getvalue()


def export_file_name(kind: str, branch: Optional[str], ext: str, now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    stamp = now.strftime("%Y-%m-%d-%H-%M-%S")
    return f"inventory_export_{kind}_{branch or 'all'}_{stamp}.{ext}"
