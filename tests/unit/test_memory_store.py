"""Unit tests for the in-memory store implementations."""

import asyncio

import pytest

from analytics_service.exceptions import SummaryConflictError
from analytics_service.infrastructure.memory import InMemorySummaryStore, InMemoryTransactionSource
from analytics_service.models import CustomerAnalyticsSummary, Transaction


class _SlowReadStore(InMemorySummaryStore):
    """Reads yield to the loop, as a real database round trip would."""

    async def get_versioned(self, customer_id: str):
        await asyncio.sleep(0)
        return await super().get_versioned(customer_id)


class TestInMemorySummaryStore:
    @pytest.mark.asyncio
    async def test_versions_increase_per_write(self) -> None:
        store = InMemorySummaryStore()
        summary = CustomerAnalyticsSummary(customer_id="c1")

        assert await store.get_versioned("c1") == (None, 0)
        assert await store.put("c1", summary) == 1
        assert await store.put("c1", summary, expected_version=1) == 2

    @pytest.mark.asyncio
    async def test_stale_version_rejected(self) -> None:
        store = InMemorySummaryStore()
        await store.put("c1", CustomerAnalyticsSummary(customer_id="c1"))

        with pytest.raises(SummaryConflictError) as exc_info:
            await store.put("c1", CustomerAnalyticsSummary(customer_id="c1", total_orders=1), expected_version=0)

        assert exc_info.value.status_code == 409
        assert (await store.get("c1")).total_orders == 0

    @pytest.mark.asyncio
    async def test_update_creates_missing_summary(self) -> None:
        store = InMemorySummaryStore()

        def mutate(current):
            assert current is None
            return CustomerAnalyticsSummary(customer_id="c1", total_orders=1)

        await store.update("c1", mutate)
        assert (await store.get("c1")).total_orders == 1

    @pytest.mark.asyncio
    async def test_concurrent_updates_serialize_across_slow_reads(self) -> None:
        store = _SlowReadStore()

        def increment(current):
            summary = current or CustomerAnalyticsSummary(customer_id="c1")
            return summary.model_copy(update={"total_orders": summary.total_orders + 1})

        await asyncio.gather(*(store.update("c1", increment) for _ in range(50)))

        summary, version = await store.get_versioned("c1")
        assert summary.total_orders == 50
        assert version == 50

    @pytest.mark.asyncio
    async def test_updates_for_different_customers_do_not_block(self) -> None:
        store = _SlowReadStore()

        def create(current):
            return current or CustomerAnalyticsSummary(customer_id="x", total_orders=1)

        await asyncio.gather(store.update("a", create), store.update("b", create))
        assert [s.total_orders for s in await store.list_all()] == [1, 1]

    @pytest.mark.asyncio
    async def test_key_order_survives_round_trip(self) -> None:
        store = InMemorySummaryStore()
        await store.put("c1", CustomerAnalyticsSummary(customer_id="c1", item_frequency={"z": 1, "a": 1}))
        assert list((await store.get("c1")).item_frequency) == ["z", "a"]


class TestInMemoryTransactionSource:
    @pytest.mark.asyncio
    async def test_customer_queries(self) -> None:
        source = InMemoryTransactionSource([
            Transaction(order_id="1", customer_id="b"),
            Transaction(order_id="2", customer_id="a"),
            Transaction(order_id="3"),
        ])
        source.add(Transaction(order_id="4", customer_id="b"))

        assert await source.list_customer_ids() == ["a", "b"]
        assert [t.order_id for t in await source.list_transactions_for_customer("b")] == ["1", "4"]
        assert len(await source.list_all_transactions()) == 4
