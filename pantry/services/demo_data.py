from __future__ import annotations

import random
from datetime import date, timedelta

from pantry.permissions import Role
from pantry.schema import COLLECTION_TABLES, USERS
from pantry.services.ledger import LedgerEngine
from pantry.services.users import Session, add_user, list_users
from pantry.store import DocumentStore


DEFAULT_USERS = [
    ("Admin", "admin", None),
    ("Koramangala Kitchen", "branchManager", "Koramangala"),
    ("HSR Kitchen", "branchManager", "HSR Layout"),
    ("Viewer", "user", None),
]

DEMO_ITEMS = [
    # description, unit of measure, vendor
    ("Rice", "Kg", "Sri Balaji Traders"),
    ("Onion", "Kg", "City Vegetables"),
    ("Sunflower Oil", "Litre", "Gold Drop Agencies"),
    ("Toor Dal", "Kg", "Sri Balaji Traders"),
    ("Milk", "Litre", "Nandini Dairy"),
]


def upsert_reference_data(store: DocumentStore) -> None:
    existing = {str(u.get("name", "")).lower() for u in list_users(store)}
    for name, role, branch in DEFAULT_USERS:
        if name.lower() not in existing:
            add_user(store, name=name, role=role, branch=branch)


def wipe_all(store: DocumentStore, *, keep_users: bool = True) -> None:
    with store.transaction():
        for collection in COLLECTION_TABLES:
            if keep_users and collection == USERS:
                continue
            store.clear(collection)


def load_demo_data(store: DocumentStore, *, branches: list[str], seed: int = 7) -> None:
    random.seed(seed)
    upsert_reference_data(store)

    engine = LedgerEngine(store)
    admin = Session(name="Admin", role=Role.ADMIN)

    for branch in branches:
        for description, mou, vendor in DEMO_ITEMS:
            for i in range(2):
                qty = random.randint(10, 60)
                expiry = date.today() + timedelta(days=random.randint(15, 120))
                engine.record_purchase(
                    admin,
                    branch=branch,
                    description=description,
                    vendor=vendor,
                    bill_no=f"B-{random.randint(1000, 9999)}",
                    bill_amount=round(qty * random.uniform(30, 140), 2),
                    qty=qty,
                    mou=mou,
                    expiry_date=expiry,
                )

            available = engine.get_available(branch, description)
            consume = random.randint(1, max(1, int(available // 2)))
            engine.record_consumption(admin, branch=branch, description=description, qty=consume)
