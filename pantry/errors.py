from __future__ import annotations

from typing import Optional


class LedgerError(ValueError):
    """Base class for everything the ledger raises to its callers."""


class ValidationError(LedgerError):
    pass


class NotPermittedError(LedgerError):
    pass


class InsufficientStockError(LedgerError):
    def __init__(self, description: str, attempted: float, available: float) -> None:
        self.description = description
        self.attempted = attempted
        self.available = available
        super().__init__(
            f'Cannot consume {_fmt(attempted)}. Available stock for "{description}" is {_fmt(available)}.'
        )


class StoreError(LedgerError):
    pass


class IndexUnavailableError(StoreError):
    def __init__(self, collection: str, field: str) -> None:
        self.collection = collection
        self.field = field
        super().__init__(f"No index on {collection}.{field}.")


class ConcurrentUpdateError(StoreError):
    def __init__(self, collection: str, doc_id: int, expected_version: Optional[int]) -> None:
        self.collection = collection
        self.doc_id = doc_id
        self.expected_version = expected_version
        super().__init__(
            f"{collection} row {doc_id} was changed by someone else. Reload and submit again."
        )


class DocumentNotFoundError(StoreError):
    def __init__(self, collection: str, doc_id: int) -> None:
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"{collection} row {doc_id} not found.")


def _fmt(n: float) -> str:
    n = float(n)
    return str(int(n)) if n.is_integer() else str(n)
