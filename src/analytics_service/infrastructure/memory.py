"""In-process implementations of the analytics store interfaces.

Used for local development (``STORAGE_BACKEND=memory``) and tests. Summaries
are kept as JSON documents, like the Postgres store, and updates for one
customer are serialized by a per-customer ``asyncio.Lock``.
"""

import asyncio
from collections import defaultdict
from collections.abc import Iterable
from typing import Any

from analytics_service.exceptions import SummaryConflictError
from analytics_service.interfaces import SummaryMutation
from analytics_service.models import CatalogItem, CustomerAnalyticsSummary, Transaction


class InMemoryTransactionSource:
    """Order history held in a list, in insertion order."""

    def __init__(self, transactions: Iterable[Transaction] = ()):
        self._transactions = list(transactions)

    def add(self, transaction: Transaction) -> None:
        self._transactions.append(transaction)

    async def list_all_transactions(self) -> list[Transaction]:
        return list(self._transactions)

    async def list_transactions_for_customer(self, customer_id: str) -> list[Transaction]:
        return [t for t in self._transactions if t.customer_id == customer_id]

    async def list_customer_ids(self) -> list[str]:
        return sorted({t.customer_id for t in self._transactions if t.customer_id})


class InMemoryCatalog:
    """Catalog keyed by item ID."""

    def __init__(self, items: Iterable[CatalogItem] = ()):
        self._items = {item.id: item for item in items}

    def add(self, item: CatalogItem) -> None:
        self._items[item.id] = item

    def remove(self, item_id: str) -> None:
        self._items.pop(item_id, None)

    async def resolve_item(self, item_id: str) -> CatalogItem | None:
        return self._items.get(item_id)

    async def list_items(self) -> list[CatalogItem]:
        return list(self._items.values())


class InMemorySummaryStore:
    """Versioned summary documents with per-customer locking."""

    def __init__(self) -> None:
        self._documents: dict[str, tuple[dict[str, Any], int]] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def get(self, customer_id: str) -> CustomerAnalyticsSummary | None:
        summary, _ = await self.get_versioned(customer_id)
        return summary

    async def get_versioned(
        self, customer_id: str
    ) -> tuple[CustomerAnalyticsSummary | None, int]:
        entry = self._documents.get(customer_id)
        if entry is None:
            return None, 0
        document, version = entry
        return CustomerAnalyticsSummary.model_validate(document), version

    async def put(
        self,
        customer_id: str,
        summary: CustomerAnalyticsSummary,
        expected_version: int | None = None,
    ) -> int:
        async with self._locks[customer_id]:
            _, current_version = self._documents.get(customer_id, (None, 0))
            if expected_version is not None and expected_version != current_version:
                raise SummaryConflictError(customer_id, expected_version, current_version)
            return self._write(customer_id, summary, current_version)

    async def update(
        self, customer_id: str, mutate: SummaryMutation
    ) -> CustomerAnalyticsSummary:
        async with self._locks[customer_id]:
            current, version = await self.get_versioned(customer_id)
            updated = mutate(current)
            self._write(customer_id, updated, version)
            return updated

    async def list_all(self) -> list[CustomerAnalyticsSummary]:
        return [
            CustomerAnalyticsSummary.model_validate(document)
            for customer_id, (document, _) in sorted(self._documents.items())
        ]

    def _write(self, customer_id: str, summary: CustomerAnalyticsSummary, version: int) -> int:
        self._documents[customer_id] = (summary.model_dump(mode="json"), version + 1)
        return version + 1
