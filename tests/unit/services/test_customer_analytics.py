"""Unit tests for customer analytics aggregation."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from analytics_service.exceptions import (
    DependencyUnavailableError,
    InvalidInputError,
    SummaryNotFoundError,
)
from analytics_service.infrastructure.memory import (
    InMemoryCatalog,
    InMemorySummaryStore,
    InMemoryTransactionSource,
)
from analytics_service.models import CatalogItem, LineItem, Transaction
from analytics_service.services.customer_analytics import (
    CustomerAnalyticsService,
    apply_purchase,
    build_co_purchase_map,
    new_summary,
    regenerate_summary,
    top_frequent_items,
)

NOW = datetime(2026, 9, 1, 12, 0, tzinfo=timezone.utc)


def _order(order_id: str, customer_id: str, lines: list[LineItem], total: float, minutes: int | None):
    return Transaction(
        order_id=order_id,
        customer_id=customer_id,
        items=lines,
        total_amount=total,
        created_at=NOW + timedelta(minutes=minutes) if minutes is not None else None,
    )


@pytest.fixture
def catalog() -> InMemoryCatalog:
    return InMemoryCatalog([
        CatalogItem(id="x", name="Espresso", category_id="bev"),
        CatalogItem(id="y", name="Bagel", category_id="bakery"),
        CatalogItem(id="z", name="Crisps", category_id="snacks"),
    ])


@pytest.fixture
def orders() -> list[Transaction]:
    return [
        _order("o2", "cust", [LineItem(item_id="y", quantity=2), LineItem(item_id="x")], 12.0, 5),
        _order("o1", "cust", [LineItem(item_id="x")], 4.0, 0),
        _order("o3", "cust", [LineItem(item_id="z")], 2.0, None),
        _order("o9", "other", [LineItem(item_id="z")], 9.0, 1),
    ]


@pytest.fixture
def service(catalog: InMemoryCatalog, orders: list[Transaction]) -> CustomerAnalyticsService:
    return CustomerAnalyticsService(
        summaries=InMemorySummaryStore(),
        transactions=InMemoryTransactionSource(orders),
        catalog=catalog,
        clock=lambda: NOW,
    )


class TestApplyPurchase:
    """Incremental fold of one purchase."""

    def test_first_purchase_from_zero_state(self) -> None:
        summary = apply_purchase(
            new_summary("c1"),
            [LineItem(item_id="x", category_id="bev")],
            50.0,
            now=NOW,
        )

        assert summary.total_orders == 1
        assert summary.average_order_value == pytest.approx(50.0)
        assert summary.item_frequency == {"x": 1}
        assert summary.frequent_items == ["x"]
        assert summary.category_preference == {"bev": pytest.approx(0.1)}
        assert summary.category_weighting == "incremental"
        assert summary.last_purchase_at == NOW
        assert len(summary.purchase_history) == 1

    def test_identical_purchases_accumulate(self) -> None:
        lines = [LineItem(item_id="x", category_id="bev")]
        summary = apply_purchase(new_summary("c1"), lines, 20.0, now=NOW)
        summary = apply_purchase(summary, lines, 20.0, now=NOW)

        assert summary.total_orders == 2
        assert summary.average_order_value == pytest.approx(20.0)
        assert summary.item_frequency == {"x": 2}
        assert summary.category_preference["bev"] == pytest.approx(0.2)

    def test_running_average(self) -> None:
        summary = apply_purchase(new_summary("c1"), [LineItem(item_id="x")], 10.0, now=NOW)
        summary = apply_purchase(summary, [LineItem(item_id="y")], 30.0, now=NOW)
        assert summary.average_order_value == pytest.approx(20.0)

    def test_quantity_weighted_frequency(self) -> None:
        summary = apply_purchase(new_summary("c1"), [LineItem(item_id="x", quantity=3)], 9.0, now=NOW)
        assert summary.item_frequency == {"x": 3}

    def test_category_from_lookup(self) -> None:
        summary = apply_purchase(
            new_summary("c1"),
            [LineItem(item_id="x"), LineItem(item_id="ghost")],
            5.0,
            category_lookup={"x": "bev", "ghost": None},
            now=NOW,
        )
        assert summary.category_preference == {"bev": pytest.approx(0.1)}
        # Missing category still counts toward frequency
        assert summary.item_frequency == {"x": 1, "ghost": 1}

    def test_co_purchase_rules_carried_over(self) -> None:
        base = new_summary("c1").model_copy(update={"association_rules": {"a": ["b"]}})
        summary = apply_purchase(base, [LineItem(item_id="c"), LineItem(item_id="d")], 1.0, now=NOW)
        assert summary.association_rules == {"a": ["b"]}

    def test_input_summary_not_modified(self) -> None:
        base = new_summary("c1")
        apply_purchase(base, [LineItem(item_id="x")], 1.0, now=NOW)
        assert base.total_orders == 0
        assert base.item_frequency == {}


class TestFrequentItems:
    def test_top_five(self) -> None:
        frequency = {f"i{n}": n for n in range(1, 8)}
        assert top_frequent_items(frequency) == ["i7", "i6", "i5", "i4", "i3"]

    def test_ties_keep_insertion_order(self) -> None:
        assert top_frequent_items({"b": 1, "a": 1, "c": 2}) == ["c", "b", "a"]


class TestRegenerateSummary:
    """Full rebuild from the order log."""

    def test_rebuild(self, orders: list[Transaction]) -> None:
        lookup = {"x": "bev", "y": "bakery", "z": "snacks"}
        summary = regenerate_summary("cust", orders[:3], category_lookup=lookup)

        assert summary.total_orders == 3
        assert summary.average_order_value == pytest.approx(6.0)
        assert summary.item_frequency == {"x": 2, "y": 2, "z": 1}
        assert summary.frequent_items == ["x", "y", "z"]
        assert summary.category_weighting == "normalized"
        assert sum(summary.category_preference.values()) == pytest.approx(1.0)
        assert summary.category_preference["bev"] == pytest.approx(0.5)
        # Oldest first, undated last
        assert [p.order_id for p in summary.purchase_history] == ["o1", "o2", "o3"]
        assert summary.last_purchase_at == NOW + timedelta(minutes=5)
        assert summary.association_rules == {"y": ["x"], "x": ["y"]}

    def test_idempotent(self, orders: list[Transaction]) -> None:
        lookup = {"x": "bev", "y": "bakery", "z": "snacks"}
        first = regenerate_summary("cust", orders[:3], category_lookup=lookup)
        second = regenerate_summary("cust", list(reversed(orders[:3])), category_lookup=lookup)
        assert first.model_dump_json() == second.model_dump_json()

    def test_no_orders(self) -> None:
        summary = regenerate_summary("cust", [])
        assert summary.total_orders == 0
        assert summary.average_order_value == 0.0
        assert summary.category_preference == {}
        assert summary.last_purchase_at is None


class TestCoPurchaseMap:
    def test_bidirectional_links(self) -> None:
        summary = apply_purchase(
            new_summary("c"), [LineItem(item_id="a"), LineItem(item_id="b"), LineItem(item_id="c")], 1.0, now=NOW
        )
        rules = build_co_purchase_map(summary.purchase_history)
        assert rules == {"a": ["b", "c"], "b": ["a", "c"], "c": ["a", "b"]}

    def test_single_item_purchases_ignored(self) -> None:
        summary = apply_purchase(new_summary("c"), [LineItem(item_id="a")], 1.0, now=NOW)
        assert build_co_purchase_map(summary.purchase_history) == {}


class TestCustomerAnalyticsService:
    """Store-backed operations."""

    @pytest.mark.asyncio
    async def test_summary_missing_before_first_purchase(self, service: CustomerAnalyticsService) -> None:
        with pytest.raises(SummaryNotFoundError):
            await service.get_summary("nobody")

    @pytest.mark.asyncio
    async def test_record_purchase_resolves_categories(self, service: CustomerAnalyticsService) -> None:
        summary = await service.record_purchase("c1", [LineItem(item_id="x")], 50.0)

        assert summary.total_orders == 1
        assert summary.category_preference == {"bev": pytest.approx(0.1)}
        stored = await service.get_summary("c1")
        assert stored == summary

    @pytest.mark.asyncio
    async def test_record_purchase_unknown_item(self, service: CustomerAnalyticsService) -> None:
        summary = await service.record_purchase("c1", [LineItem(item_id="deleted")], 3.0)
        assert summary.item_frequency == {"deleted": 1}
        assert summary.category_preference == {}

    @pytest.mark.asyncio
    async def test_catalog_failure_does_not_block_purchase(self, service: CustomerAnalyticsService) -> None:
        class BrokenCatalog:
            async def resolve_item(self, item_id: str):
                raise ConnectionError("catalog down")

            async def list_items(self):
                raise ConnectionError("catalog down")

        service.catalog = BrokenCatalog()
        summary = await service.record_purchase("c1", [LineItem(item_id="x")], 3.0)
        assert summary.item_frequency == {"x": 1}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "customer_id,items,total",
        [
            ("", [LineItem(item_id="x")], 1.0),
            ("   ", [LineItem(item_id="x")], 1.0),
            ("c1", [], 1.0),
            ("c1", [LineItem(item_id="x")], -1.0),
            ("c1", [LineItem(item_id="x")], float("nan")),
        ],
    )
    async def test_invalid_purchase_rejected(
        self, service: CustomerAnalyticsService, customer_id: str, items: list[LineItem], total: float
    ) -> None:
        with pytest.raises(InvalidInputError):
            await service.record_purchase(customer_id, items, total)
        assert await service.summaries.list_all() == []

    @pytest.mark.asyncio
    async def test_concurrent_purchases_not_lost(self, service: CustomerAnalyticsService) -> None:
        await asyncio.gather(
            *(service.record_purchase("c1", [LineItem(item_id="x")], 10.0) for _ in range(20))
        )
        summary = await service.get_summary("c1")

        assert summary.total_orders == 20
        assert summary.item_frequency == {"x": 20}
        assert len(summary.purchase_history) == 20
        assert summary.average_order_value == pytest.approx(10.0)

    @pytest.mark.asyncio
    async def test_regenerate_customer_replaces_summary(self, service: CustomerAnalyticsService) -> None:
        await service.record_purchase("cust", [LineItem(item_id="zzz")], 99.0)

        summary = await service.regenerate_customer("cust")

        assert summary.total_orders == 3
        assert "zzz" not in summary.item_frequency
        assert summary.is_normalized
        assert await service.get_summary("cust") == summary

    @pytest.mark.asyncio
    async def test_regenerate_customer_idempotent(self, service: CustomerAnalyticsService) -> None:
        first = await service.regenerate_customer("cust")
        second = await service.regenerate_customer("cust")
        assert first.model_dump_json() == second.model_dump_json()

    @pytest.mark.asyncio
    async def test_regenerate_all(self, service: CustomerAnalyticsService) -> None:
        result = await service.regenerate_all()

        assert result == {
            "total_customers": 2,
            "success_count": 2,
            "error_count": 0,
            "total_orders": 4,
        }
        assert [s.customer_id for s in await service.summaries.list_all()] == ["cust", "other"]

    @pytest.mark.asyncio
    async def test_regenerate_all_continues_past_failures(
        self, service: CustomerAnalyticsService
    ) -> None:
        original = service.transactions.list_transactions_for_customer

        async def flaky(customer_id: str):
            if customer_id == "cust":
                raise ConnectionError("boom")
            return await original(customer_id)

        service.transactions.list_transactions_for_customer = flaky

        result = await service.regenerate_all()

        assert result["success_count"] == 1
        assert result["error_count"] == 1
        assert await service.summaries.get("cust") is None

    @pytest.mark.asyncio
    async def test_regenerate_customer_without_orders_writes_nothing(
        self, service: CustomerAnalyticsService
    ) -> None:
        with pytest.raises(SummaryNotFoundError):
            await service.regenerate_customer("ghost")

        assert await service.summaries.get("ghost") is None

    @pytest.mark.asyncio
    async def test_regenerate_without_orders_keeps_existing_summary(
        self, service: CustomerAnalyticsService
    ) -> None:
        await service.record_purchase("walkin", [LineItem(item_id="x")], 4.0)

        with pytest.raises(SummaryNotFoundError):
            await service.regenerate_customer("walkin")

        assert (await service.get_summary("walkin")).total_orders == 1


class TestReadSummary:
    """Display reads degrade instead of failing."""

    @pytest.mark.asyncio
    async def test_stored_summary_not_degraded(self, service: CustomerAnalyticsService) -> None:
        await service.record_purchase("c1", [LineItem(item_id="x")], 3.0)

        summary, degraded = await service.read_summary("c1")

        assert degraded is False
        assert summary.total_orders == 1

    @pytest.mark.asyncio
    async def test_unreachable_store_serves_empty_default(
        self, service: CustomerAnalyticsService, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def unreachable(_customer_id: str):
            raise DependencyUnavailableError("summary store", ConnectionError("refused"))

        monkeypatch.setattr(service.summaries, "get", unreachable)

        summary, degraded = await service.read_summary("c1")

        assert degraded is True
        assert summary.customer_id == "c1"
        assert summary.total_orders == 0
        assert summary.item_frequency == {}

    @pytest.mark.asyncio
    async def test_unknown_customer_still_not_found(self, service: CustomerAnalyticsService) -> None:
        with pytest.raises(SummaryNotFoundError):
            await service.read_summary("nobody")
