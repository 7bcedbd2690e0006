"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from analytics_service.api.dependencies import Stores, get_cache, get_stores, get_suggester
from analytics_service.config import Settings, get_settings
from analytics_service.infrastructure.memory import (
    InMemoryCatalog,
    InMemorySummaryStore,
    InMemoryTransactionSource,
)
from analytics_service.infrastructure.redis import CacheService
from analytics_service.main import create_app
from analytics_service.models import CartItem, CatalogItem, LineItem, Transaction
from analytics_service.services.suggester import SuggestionResult


class StaticSuggester:
    """Suggester returning a fixed result and recording its calls."""

    def __init__(self, item_ids: list[str] | None = None, error: str | None = None):
        self.result = SuggestionResult(item_ids=list(item_ids or []), error=error)
        self.calls: list[dict[str, Any]] = []

    async def suggest(
        self,
        catalog: Sequence[CatalogItem],
        cart: Sequence[CartItem],
        history: Sequence[CartItem],
    ) -> SuggestionResult:
        self.calls.append({"catalog": catalog, "cart": cart, "history": history})
        return self.result


BASE_TIME = datetime(2026, 9, 1, 12, 0, tzinfo=timezone.utc)


def make_transaction(
    order_id: str,
    item_ids: list[str],
    customer_id: str | None = None,
    total_amount: float = 10.0,
    minutes: int = 0,
    quantities: dict[str, int] | None = None,
) -> Transaction:
    """Build a transaction whose lines carry names derived from their IDs."""
    quantities = quantities or {}
    return Transaction(
        order_id=order_id,
        customer_id=customer_id,
        items=[
            LineItem(item_id=i, item_name=f"Item {i}", quantity=quantities.get(i, 1))
            for i in item_ids
        ],
        total_amount=total_amount,
        created_at=BASE_TIME + timedelta(minutes=minutes),
    )


@pytest.fixture
def sample_catalog_items() -> list[CatalogItem]:
    return [
        CatalogItem(id="coffee", name="Coffee", category_id="beverages", price=3.0),
        CatalogItem(id="tea", name="Tea", category_id="beverages", price=2.5),
        CatalogItem(id="croissant", name="Croissant", category_id="bakery", price=2.2),
        CatalogItem(id="muffin", name="Muffin", category_id="bakery", price=2.9),
        CatalogItem(id="crisps", name="Crisps", category_id="snacks", price=1.8),
    ]


@pytest.fixture
def sample_transactions() -> list[Transaction]:
    return [
        make_transaction("o1", ["coffee", "croissant"], customer_id="alice", total_amount=5.2, minutes=0),
        make_transaction("o2", ["coffee", "croissant"], customer_id="bob", total_amount=5.2, minutes=1),
        make_transaction("o3", ["coffee", "muffin"], customer_id="alice", total_amount=5.9, minutes=2),
        make_transaction("o4", ["tea"], customer_id="carol", total_amount=2.5, minutes=3),
    ]


@pytest.fixture
def stores(
    sample_transactions: list[Transaction], sample_catalog_items: list[CatalogItem]
) -> Stores:
    """Fresh in-memory stores per test."""
    return Stores(
        transactions=InMemoryTransactionSource(sample_transactions),
        catalog=InMemoryCatalog(sample_catalog_items),
        summaries=InMemorySummaryStore(),
    )


@pytest.fixture
def suggester() -> StaticSuggester:
    return StaticSuggester(["muffin", "crisps"])


@pytest.fixture
def test_settings() -> Settings:
    """Get test settings with overrides."""
    return Settings(
        app_env="test",
        debug=True,
        storage_backend="memory",
        redis_host="localhost",
        redis_port=6379,
        gemini_api_key="",
        suggester_timeout_seconds=1.0,
    )


@pytest.fixture
def app(test_settings: Settings, stores: Stores, suggester: StaticSuggester) -> Any:
    """Create test application backed by in-memory stores."""

    def get_test_settings() -> Settings:
        return test_settings

    async def get_test_cache() -> CacheService:
        return CacheService(None)

    app = create_app()
    app.dependency_overrides[get_settings] = get_test_settings
    app.dependency_overrides[get_stores] = lambda: stores
    app.dependency_overrides[get_cache] = get_test_cache
    app.dependency_overrides[get_suggester] = lambda: suggester
    return app


@pytest.fixture
def client(app: Any) -> TestClient:
    """Create synchronous test client."""
    return TestClient(app)


@pytest_asyncio.fixture
async def async_client(app: Any) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Create asynchronous test client."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
