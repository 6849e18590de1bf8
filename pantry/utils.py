from __future__ import annotations

from datetime import datetime, timezone


def iso_now() -> str:
    # Microseconds kept: "most recent row" is decided by this value.
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def normalize_description(s) -> str:
    return str(s or "").strip().lower()


def display_number(n) -> str:
    try:
        f = float(n)
    except (TypeError, ValueError):
        return ""
    return str(int(f)) if f.is_integer() else f"{f:g}"
