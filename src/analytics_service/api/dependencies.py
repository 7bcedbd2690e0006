"""Dependency providers wiring stores and services into the API."""

from dataclasses import dataclass
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from analytics_service.config import Settings, get_settings
from analytics_service.infrastructure.database.connection import get_session_factory
from analytics_service.infrastructure.database.repositories import (
    SqlCatalogSource,
    SqlSummaryStore,
    SqlTransactionSource,
)
from analytics_service.infrastructure.memory import (
    InMemoryCatalog,
    InMemorySummaryStore,
    InMemoryTransactionSource,
)
from analytics_service.infrastructure.redis import CacheService, get_redis_client
from analytics_service.interfaces import CatalogSource, SummaryStore, TransactionSource
from analytics_service.services.customer_analytics import CustomerAnalyticsService
from analytics_service.services.global_analytics import GlobalAnalyticsService
from analytics_service.services.recommendation_resolver import (
    RecommendationResolver,
    RecommendationService,
)
from analytics_service.services.suggester import GeminiSuggester, Suggester


@dataclass
class Stores:
    """The three backing stores the services read and write."""

    transactions: TransactionSource
    catalog: CatalogSource
    summaries: SummaryStore


@lru_cache
def _memory_stores() -> Stores:
    return Stores(
        transactions=InMemoryTransactionSource(),
        catalog=InMemoryCatalog(),
        summaries=InMemorySummaryStore(),
    )


def build_stores(settings: Settings) -> Stores:
    """Stores for the configured backend."""
    if settings.storage_backend == "memory":
        return _memory_stores()

    return sql_stores(get_session_factory())


def sql_stores(factory: async_sessionmaker[AsyncSession]) -> Stores:
    """SQL-backed stores sharing one session factory."""
    return Stores(
        transactions=SqlTransactionSource(factory),
        catalog=SqlCatalogSource(factory),
        summaries=SqlSummaryStore(factory),
    )


def build_customer_analytics_service(settings: Settings, stores: Stores) -> CustomerAnalyticsService:
    return CustomerAnalyticsService(
        summaries=stores.summaries,
        transactions=stores.transactions,
        catalog=stores.catalog,
        regeneration_concurrency=settings.regeneration_concurrency,
    )


# =============================================================================
# FastAPI dependencies
# =============================================================================


def get_stores(settings: Settings = Depends(get_settings)) -> Stores:
    return build_stores(settings)


async def get_cache() -> CacheService:
    return CacheService(await get_redis_client())


def get_suggester(settings: Settings = Depends(get_settings)) -> Suggester:
    return GeminiSuggester.from_settings(settings)


def get_customer_analytics_service(
    stores: Stores = Depends(get_stores),
    settings: Settings = Depends(get_settings),
) -> CustomerAnalyticsService:
    return build_customer_analytics_service(settings, stores)


def get_global_analytics_service(
    stores: Stores = Depends(get_stores),
    settings: Settings = Depends(get_settings),
) -> GlobalAnalyticsService:
    return GlobalAnalyticsService(
        summaries=stores.summaries,
        transactions=stores.transactions,
        revenue_mode=settings.revenue_mode,
    )


def get_recommendation_service(
    stores: Stores = Depends(get_stores),
    cache: CacheService = Depends(get_cache),
    suggester: Suggester = Depends(get_suggester),
    global_analytics: GlobalAnalyticsService = Depends(get_global_analytics_service),
    settings: Settings = Depends(get_settings),
) -> RecommendationService:
    return RecommendationService(
        catalog=stores.catalog,
        suggester=suggester,
        popularity=global_analytics.get_item_popularity,
        cache=cache,
        resolver=RecommendationResolver(timeout_seconds=settings.suggester_timeout_seconds),
        catalog_cache_ttl_seconds=settings.catalog_cache_ttl_seconds,
    )
