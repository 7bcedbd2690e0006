"""Customer analytics aggregation.

Maintains one summary per customer. Purchases are folded in incrementally;
the regeneration path discards the stored summary and replays the
customer's full order log instead.
"""

import asyncio
import math
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import structlog

from analytics_service.exceptions import (
    DependencyUnavailableError,
    InvalidInputError,
    SummaryNotFoundError,
)
from analytics_service.interfaces import CatalogSource, SummaryStore, TransactionSource
from analytics_service.models import (
    CustomerAnalyticsSummary,
    LineItem,
    PurchaseRecord,
    Transaction,
)
from analytics_service.services.category_weighting import (
    IncrementalWeighting,
    NormalizedWeighting,
)
from shared.constants import FREQUENT_ITEMS_LIMIT

logger = structlog.get_logger()

CategoryLookup = Mapping[str, str | None]


# ==============================================================================
# Pure aggregation
# ==============================================================================


def new_summary(customer_id: str) -> CustomerAnalyticsSummary:
    """Zero-state summary for a first-time customer."""
    return CustomerAnalyticsSummary(customer_id=customer_id)


def top_frequent_items(
    item_frequency: Mapping[str, int], limit: int = FREQUENT_ITEMS_LIMIT
) -> list[str]:
    """Most purchased items; ties keep the mapping's insertion order."""
    ranked = sorted(item_frequency.items(), key=lambda x: x[1], reverse=True)
    return [item_id for item_id, _ in ranked[:limit]]


def _line_category(line: LineItem, category_lookup: CategoryLookup) -> str | None:
    return line.category_id or category_lookup.get(line.item_id)


def _add_item_frequency(frequency: dict[str, int], lines: Iterable[LineItem]) -> None:
    for line in lines:
        frequency[line.item_id] = frequency.get(line.item_id, 0) + line.quantity


def build_co_purchase_map(history: Sequence[PurchaseRecord]) -> dict[str, list[str]]:
    """Link every item of a multi-item purchase to every other item in it."""
    rules: dict[str, list[str]] = {}
    for purchase in history:
        item_ids = list(dict.fromkeys(purchase.item_ids))
        if len(item_ids) < 2:
            continue
        for item_id in item_ids:
            linked = rules.setdefault(item_id, [])
            for other_id in item_ids:
                if other_id != item_id and other_id not in linked:
                    linked.append(other_id)
    return rules


def apply_purchase(
    summary: CustomerAnalyticsSummary,
    items: Sequence[LineItem],
    total_amount: float,
    *,
    category_lookup: CategoryLookup | None = None,
    now: datetime | None = None,
    purchase_id: str | None = None,
    weighting: IncrementalWeighting | None = None,
) -> CustomerAnalyticsSummary:
    """
    Fold one purchase into a summary.

    Item frequency is quantity-weighted; category preference grows by the
    incremental weight once per line item whose category is known. Lines
    without a resolvable category still count toward item frequency.
    Co-purchase rules are carried over unchanged.

    Args:
        summary: Existing (or zero-state) summary; not modified
        items: Purchased lines
        total_amount: Order total
        category_lookup: item_id -> category_id for lines that carry none
        now: Purchase timestamp
        purchase_id: Purchase record ID, generated when omitted
        weighting: Category strategy, incremental +0.1 by default

    Returns:
        The updated summary
    """
    category_lookup = category_lookup or {}
    now = now or datetime.now(timezone.utc)
    weighting = weighting or IncrementalWeighting()

    item_frequency = dict(summary.item_frequency)
    _add_item_frequency(item_frequency, items)

    categories = [
        category_id
        for category_id in (_line_category(line, category_lookup) for line in items)
        if category_id
    ]
    category_preference = weighting.apply(summary.category_preference, categories)

    total_orders = summary.total_orders + 1
    average_order_value = (
        summary.average_order_value * summary.total_orders + total_amount
    ) / total_orders

    record = PurchaseRecord(
        order_id=purchase_id or uuid4().hex,
        item_ids=[line.item_id for line in items],
        timestamp=now,
        total_amount=total_amount,
        categories=list(dict.fromkeys(categories)),
    )

    return CustomerAnalyticsSummary(
        customer_id=summary.customer_id,
        item_frequency=item_frequency,
        category_preference=category_preference,
        category_weighting=weighting.name,
        purchase_history=[*summary.purchase_history, record],
        average_order_value=average_order_value,
        total_orders=total_orders,
        frequent_items=top_frequent_items(item_frequency),
        association_rules={k: list(v) for k, v in summary.association_rules.items()},
        last_purchase_at=now,
    )


def _order_sort_key(order: Transaction) -> tuple[bool, float, str]:
    created = order.created_at
    return (created is None, created.timestamp() if created else 0.0, order.order_id)


def regenerate_summary(
    customer_id: str,
    orders: Sequence[Transaction],
    *,
    category_lookup: CategoryLookup | None = None,
    weighting: NormalizedWeighting | None = None,
) -> CustomerAnalyticsSummary:
    """
    Rebuild a summary purely from a customer's order log.

    Orders are replayed oldest first (undated orders last, order ID breaking
    ties), so the result depends only on the orders and the category lookup
    and running it twice yields an identical summary.
    """
    category_lookup = category_lookup or {}
    weighting = weighting or NormalizedWeighting()

    item_frequency: dict[str, int] = {}
    category_hits: list[str] = []
    history: list[PurchaseRecord] = []
    total_value = 0.0
    last_purchase_at: datetime | None = None

    for order in sorted(orders, key=_order_sort_key):
        _add_item_frequency(item_frequency, order.items)

        order_categories = []
        for line in order.items:
            category_id = _line_category(line, category_lookup)
            if category_id:
                order_categories.append(category_id)
        category_hits.extend(order_categories)

        history.append(
            PurchaseRecord(
                order_id=order.order_id,
                item_ids=[line.item_id for line in order.items],
                timestamp=order.created_at,
                total_amount=order.total_amount,
                categories=list(dict.fromkeys(order_categories)),
            )
        )
        total_value += order.total_amount

        if order.created_at and (last_purchase_at is None or order.created_at > last_purchase_at):
            last_purchase_at = order.created_at

    total_orders = len(history)

    return CustomerAnalyticsSummary(
        customer_id=customer_id,
        item_frequency=item_frequency,
        category_preference=weighting.apply({}, category_hits),
        category_weighting=weighting.name,
        purchase_history=history,
        average_order_value=total_value / total_orders if total_orders else 0.0,
        total_orders=total_orders,
        frequent_items=top_frequent_items(item_frequency),
        association_rules=build_co_purchase_map(history),
        last_purchase_at=last_purchase_at,
    )


# ==============================================================================
# Store-backed service
# ==============================================================================


class CustomerAnalyticsService:
    """Keeps stored customer summaries in step with purchases."""

    def __init__(
        self,
        summaries: SummaryStore,
        transactions: TransactionSource,
        catalog: CatalogSource,
        regeneration_concurrency: int = 4,
        clock: Callable[[], datetime] | None = None,
    ):
        self.summaries = summaries
        self.transactions = transactions
        self.catalog = catalog
        self.regeneration_concurrency = max(1, regeneration_concurrency)
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def get_summary(self, customer_id: str) -> CustomerAnalyticsSummary:
        _validate_customer_id(customer_id)
        summary = await self.summaries.get(customer_id)
        if summary is None:
            raise SummaryNotFoundError(customer_id)
        return summary

    async def read_summary(self, customer_id: str) -> tuple[CustomerAnalyticsSummary, bool]:
        """
        Summary for display, plus whether it is degraded.

        An unreachable summary store yields an empty default summary marked
        degraded instead of an error. A customer the store does not know is
        still SummaryNotFoundError.
        """
        try:
            return await self.get_summary(customer_id), False
        except DependencyUnavailableError as e:
            logger.warning(
                "Summary store unavailable, serving empty analytics",
                customer_id=customer_id,
                error=e.message,
            )
            return new_summary(customer_id), True

    async def record_purchase(
        self,
        customer_id: str,
        items: Sequence[LineItem],
        total_amount: float,
    ) -> CustomerAnalyticsSummary:
        """
        Record one purchase against a customer's summary.

        Not idempotent: recording the same purchase twice counts it twice.
        The read-modify-write runs under the store's per-customer atomic
        update, so concurrent purchases by one customer never drop
        increments.
        """
        _validate_customer_id(customer_id)
        if not items:
            raise InvalidInputError("items must not be empty", {"customer_id": customer_id})
        if not math.isfinite(total_amount) or total_amount < 0:
            raise InvalidInputError(
                "total_amount must be a non-negative number",
                {"customer_id": customer_id, "total_amount": total_amount},
            )

        # Resolve categories before taking the customer's lock
        category_lookup = await self._resolve_categories(
            line.item_id for line in items if not line.category_id
        )
        now = self.clock()

        def mutate(current: CustomerAnalyticsSummary | None) -> CustomerAnalyticsSummary:
            return apply_purchase(
                current or new_summary(customer_id),
                items,
                total_amount,
                category_lookup=category_lookup,
                now=now,
            )

        summary = await self.summaries.update(customer_id, mutate)

        logger.info(
            "Recorded purchase",
            customer_id=customer_id,
            items=len(items),
            total_amount=total_amount,
            total_orders=summary.total_orders,
        )
        return summary

    async def regenerate_customer(self, customer_id: str) -> CustomerAnalyticsSummary:
        """
        Rebuild one customer's summary from their full order history.

        A customer with no orders has nothing to rebuild; nothing is written
        and SummaryNotFoundError is raised.
        """
        _validate_customer_id(customer_id)
        orders = await self.transactions.list_transactions_for_customer(customer_id)
        if not orders:
            logger.info("No orders to regenerate from", customer_id=customer_id)
            raise SummaryNotFoundError(customer_id)

        category_lookup = await self._resolve_categories(
            line.item_id for order in orders for line in order.items if not line.category_id
        )
        summary = regenerate_summary(customer_id, orders, category_lookup=category_lookup)

        # Replaces the stored summary in one write
        await self.summaries.update(customer_id, lambda _current: summary)

        logger.info(
            "Regenerated customer analytics",
            customer_id=customer_id,
            total_orders=summary.total_orders,
            distinct_items=len(summary.item_frequency),
        )
        return summary

    async def regenerate_all(self) -> dict[str, Any]:
        """
        Rebuild the summary of every customer with at least one order.

        Customers are processed by a bounded pool; each rewrite is its own
        all-or-nothing write, and one customer's failure does not stop the
        run.

        Returns:
            Summary of the operation
        """
        customer_ids = await self.transactions.list_customer_ids()
        semaphore = asyncio.Semaphore(self.regeneration_concurrency)
        outcome = {"success_count": 0, "error_count": 0, "total_orders": 0}

        async def regenerate_one(customer_id: str) -> None:
            async with semaphore:
                try:
                    summary = await self.regenerate_customer(customer_id)
                except Exception as e:
                    logger.error(
                        "Error regenerating customer analytics",
                        customer_id=customer_id,
                        error=str(e),
                    )
                    outcome["error_count"] += 1
                    return
                outcome["success_count"] += 1
                outcome["total_orders"] += summary.total_orders

        logger.info("Starting customer analytics regeneration", customers=len(customer_ids))
        await asyncio.gather(*(regenerate_one(cid) for cid in customer_ids))
        logger.info(
            "Customer analytics regeneration complete",
            success=outcome["success_count"],
            errors=outcome["error_count"],
        )

        return {"total_customers": len(customer_ids), **outcome}

    async def _resolve_categories(self, item_ids: Iterable[str]) -> dict[str, str | None]:
        """Map item IDs to categories; unknown or failing lookups map to None."""
        lookup: dict[str, str | None] = {}
        for item_id in dict.fromkeys(item_ids):
            try:
                item = await self.catalog.resolve_item(item_id)
            except Exception as e:
                logger.warning("Catalog lookup failed", item_id=item_id, error=str(e))
                item = None
            else:
                if item is None:
                    logger.warning("Item not in catalog, skipping category", item_id=item_id)
            lookup[item_id] = item.category_id if item else None
        return lookup


def _validate_customer_id(customer_id: str) -> None:
    if not customer_id or not customer_id.strip():
        raise InvalidInputError("customer_id must not be blank")
