from __future__ import annotations

from datetime import date

import pytest

from pantry.db import open_store
from pantry.permissions import Role
from pantry.services.ledger import LedgerEngine
from pantry.services.users import Session

TODAY = date(2026, 10, 19)


@pytest.fixture
def store():
    s = open_store(":memory:")
    yield s
    s.conn.close()


@pytest.fixture
def engine(store):
    return LedgerEngine(store, today=lambda: TODAY)


@pytest.fixture
def admin():
    return Session(name="Admin", role=Role.ADMIN)


@pytest.fixture
def manager():
    return Session(name="Koramangala Kitchen", role=Role.BRANCH_MANAGER, branch="Koramangala")


@pytest.fixture
def viewer():
    return Session(name="Viewer", role=Role.USER)


@pytest.fixture
def buy(engine, manager):
    def _buy(description="Rice", qty=10, branch="Koramangala", **overrides):
        kwargs = dict(
            branch=branch,
            description=description,
            vendor="Sri Balaji Traders",
            bill_no="B-1001",
            bill_amount="1200",
            qty=qty,
            mou="Kg",
        )
        kwargs.update(overrides)
        return engine.record_purchase(manager, **kwargs)

    return _buy


@pytest.fixture
def consume(engine, manager):
    def _consume(description="Rice", qty=1, branch="Koramangala"):
        return engine.record_consumption(manager, branch=branch, description=description, qty=qty)

    return _consume
