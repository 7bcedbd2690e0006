"""Capabilities the analytics core consumes.

Services depend on these protocols only; the Postgres and in-memory
backends under ``infrastructure`` both satisfy them.
"""

from collections.abc import Callable
from typing import Protocol

from analytics_service.models import CatalogItem, CustomerAnalyticsSummary, Transaction

SummaryMutation = Callable[[CustomerAnalyticsSummary | None], CustomerAnalyticsSummary]


class TransactionSource(Protocol):
    """Read-only view over historical orders."""

    async def list_all_transactions(self) -> list[Transaction]: ...

    async def list_transactions_for_customer(self, customer_id: str) -> list[Transaction]: ...

    async def list_customer_ids(self) -> list[str]:
        """Customers with at least one order."""
        ...


class CatalogSource(Protocol):
    """Item catalog lookups."""

    async def resolve_item(self, item_id: str) -> CatalogItem | None:
        """Return the item, or None when it does not exist (anymore)."""
        ...

    async def list_items(self) -> list[CatalogItem]: ...


class SummaryStore(Protocol):
    """Persistence for customer analytics summaries."""

    async def get(self, customer_id: str) -> CustomerAnalyticsSummary | None: ...

    async def get_versioned(
        self, customer_id: str
    ) -> tuple[CustomerAnalyticsSummary | None, int]:
        """Summary plus its version (0 when absent)."""
        ...

    async def put(
        self,
        customer_id: str,
        summary: CustomerAnalyticsSummary,
        expected_version: int | None = None,
    ) -> int:
        """Write a summary, returning the new version.

        Raises SummaryConflictError when ``expected_version`` is given and
        no longer matches.
        """
        ...

    async def update(
        self, customer_id: str, mutate: SummaryMutation
    ) -> CustomerAnalyticsSummary:
        """Atomically read, mutate and write one customer's summary."""
        ...

    async def list_all(self) -> list[CustomerAnalyticsSummary]: ...
