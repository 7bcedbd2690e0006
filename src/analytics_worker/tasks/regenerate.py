"""Customer summary regeneration tasks."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from celery import shared_task

from analytics_service.api.dependencies import (
    build_customer_analytics_service,
    build_stores,
    sql_stores,
)
from analytics_service.config import get_settings
from analytics_service.exceptions import DependencyUnavailableError, SummaryNotFoundError
from analytics_service.infrastructure.database.connection import scoped_session_factory
from analytics_service.services.customer_analytics import CustomerAnalyticsService

logger = structlog.get_logger()


@asynccontextmanager
async def _service_for_run() -> AsyncIterator[CustomerAnalyticsService]:
    """Analytics service whose database connections live and die with this run's loop."""
    settings = get_settings()
    if settings.storage_backend == "memory":
        yield build_customer_analytics_service(settings, build_stores(settings))
        return

    async with scoped_session_factory(settings) as factory:
        yield build_customer_analytics_service(settings, sql_stores(factory))


async def _regenerate_all() -> dict:
    async with _service_for_run() as service:
        return await service.regenerate_all()


async def _regenerate_one(customer_id: str) -> dict:
    async with _service_for_run() as service:
        summary = await service.regenerate_customer(customer_id)
    return {
        "success": True,
        "customer_id": customer_id,
        "total_orders": summary.total_orders,
    }


@shared_task(bind=True, max_retries=3, default_retry_delay=300)
def regenerate_all_customer_summaries(self) -> dict:
    """
    Rebuild every customer's analytics summary from the order log.

    Each customer is rewritten in its own transaction, so a revoked or
    timed-out run leaves every summary either old or fully rebuilt.

    Returns:
        dict: Summary of the regeneration run
    """
    logger.info("Starting scheduled customer analytics regeneration")
    try:
        return asyncio.run(_regenerate_all())
    except DependencyUnavailableError as e:
        logger.warning("Order history unavailable, retrying regeneration", error=e.message)
        raise self.retry(exc=e)


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def regenerate_customer_summary(self, customer_id: str) -> dict:
    """
    Rebuild one customer's analytics summary.

    Args:
        customer_id: The customer to rebuild

    Returns:
        dict: Regeneration result
    """
    logger.info("Regenerating customer analytics", customer_id=customer_id)
    try:
        return asyncio.run(_regenerate_one(customer_id))
    except SummaryNotFoundError:
        logger.info("Customer has no orders, nothing regenerated", customer_id=customer_id)
        return {"success": False, "customer_id": customer_id, "total_orders": 0}
    except DependencyUnavailableError as e:
        logger.warning(
            "Store unavailable, retrying customer regeneration",
            customer_id=customer_id,
            error=e.message,
        )
        raise self.retry(exc=e)
