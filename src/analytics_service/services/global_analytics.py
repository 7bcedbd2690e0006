"""Store-wide analytics folded from customer summaries."""

import asyncio
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Literal

import structlog

from analytics_service.interfaces import SummaryStore, TransactionSource
from analytics_service.models import (
    AssociationRule,
    CustomerAnalyticsSummary,
    GlobalAnalytics,
    PopularCombination,
    Transaction,
)
from analytics_service.services.rule_engine import (
    RuleEngine,
    compute_association_rules,
    compute_popular_combinations,
    count_item_lines,
)

logger = structlog.get_logger()

RevenueMode = Literal["approximate", "exact"]


def _summary_revenue(summary: CustomerAnalyticsSummary, revenue_mode: RevenueMode) -> float:
    if revenue_mode == "exact":
        return sum(purchase.total_amount for purchase in summary.purchase_history)
    # Reconstructed from the running mean; drifts from the true sum by
    # floating-point error accumulated over incremental updates
    return summary.average_order_value * summary.total_orders


def compute_global_analytics(
    summaries: Sequence[CustomerAnalyticsSummary],
    transactions: Sequence[Transaction] = (),
    revenue_mode: RevenueMode = "approximate",
    now: datetime | None = None,
) -> GlobalAnalytics:
    """
    Fold every customer summary into store-wide totals.

    Args:
        summaries: All customer summaries
        transactions: Full order history, used for the association rules
        revenue_mode: "approximate" (average * orders) or "exact"
            (sum of recorded purchase amounts)
        now: Timestamp for the result

    Returns:
        Global analytics with freshly computed association rules
    """
    total_orders = 0
    total_revenue = 0.0
    popular_items: dict[str, int] = {}
    category_preferences: dict[str, float] = {}

    for summary in summaries:
        total_orders += summary.total_orders
        total_revenue += _summary_revenue(summary, revenue_mode)

        for item_id, count in summary.item_frequency.items():
            popular_items[item_id] = popular_items.get(item_id, 0) + count

        for category_id, weight in summary.category_preference.items():
            category_preferences[category_id] = category_preferences.get(category_id, 0.0) + weight

    return GlobalAnalytics(
        total_customers=len(summaries),
        total_orders=total_orders,
        total_revenue=total_revenue,
        revenue_mode=revenue_mode,
        average_order_value=total_revenue / total_orders if total_orders > 0 else 0.0,
        popular_items=popular_items,
        category_preferences=category_preferences,
        association_rules=RuleEngine(transactions).association_rules(),
        generated_at=now or datetime.now(timezone.utc),
    )


class GlobalAnalyticsService:
    """Read-only analytics over all summaries and transactions.

    Every read degrades to an empty result when a store fails; analytics
    reads never raise on dependency errors.
    """

    def __init__(
        self,
        summaries: SummaryStore,
        transactions: TransactionSource,
        revenue_mode: RevenueMode = "approximate",
    ):
        self.summaries = summaries
        self.transactions = transactions
        self.revenue_mode = revenue_mode

    async def get_global_analytics(self) -> GlobalAnalytics:
        try:
            summaries = await self.summaries.list_all()
            transactions = await self.transactions.list_all_transactions()
        except Exception as e:
            logger.warning("Global analytics unavailable", error=str(e))
            return GlobalAnalytics(
                revenue_mode=self.revenue_mode,
                degraded=True,
                generated_at=datetime.now(timezone.utc),
            )

        # Rule mining is CPU-bound; keep it off the event loop
        result = await asyncio.to_thread(
            compute_global_analytics, summaries, transactions, self.revenue_mode
        )
        logger.info(
            "Computed global analytics",
            customers=result.total_customers,
            orders=result.total_orders,
            rules=len(result.association_rules),
        )
        return result

    async def get_association_rules(self) -> tuple[list[AssociationRule], bool]:
        """Top rules and whether the result is degraded."""
        transactions = await self._load_transactions()
        if transactions is None:
            return [], True
        return await asyncio.to_thread(compute_association_rules, transactions), False

    async def get_popular_combinations(self) -> tuple[list[PopularCombination], bool]:
        """Top item pairs and whether the result is degraded."""
        transactions = await self._load_transactions()
        if transactions is None:
            return [], True
        return await asyncio.to_thread(compute_popular_combinations, transactions), False

    async def get_item_popularity(self) -> dict[str, int]:
        """Per-item purchase counts; empty when transactions are unavailable."""
        transactions = await self._load_transactions()
        if transactions is None:
            return {}
        return count_item_lines(transactions)

    async def _load_transactions(self) -> list[Transaction] | None:
        try:
            return await self.transactions.list_all_transactions()
        except Exception as e:
            logger.warning("Transaction history unavailable", error=str(e))
            return None
