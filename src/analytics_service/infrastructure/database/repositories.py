"""Postgres-backed implementations of the analytics store interfaces.

Each call opens its own session and transaction, so a customer summary
rewrite commits or rolls back as a unit and no lock outlives one call.
"""

from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from analytics_service.exceptions import DependencyUnavailableError, SummaryConflictError
from analytics_service.infrastructure.database.models import (
    CustomerAnalyticsRecord,
    Item,
    Order,
)
from analytics_service.interfaces import SummaryMutation
from analytics_service.models import (
    CatalogItem,
    CustomerAnalyticsSummary,
    LineItem,
    Transaction,
)

logger = structlog.get_logger()

# Attempts for an update that races another first insert for the same customer
MAX_UPDATE_ATTEMPTS = 2


@contextmanager
def _unavailable_as(dependency: str) -> Iterator[None]:
    try:
        yield
    except (SQLAlchemyError, OSError) as e:
        raise DependencyUnavailableError(dependency, e) from e


def _to_transaction(order: Order) -> Transaction:
    return Transaction(
        order_id=order.id,
        customer_id=order.customer_id,
        items=[
            LineItem(
                item_id=line.item_id,
                item_name=line.item_name,
                quantity=max(1, line.quantity or 1),
            )
            for line in order.items
        ],
        total_amount=max(0.0, order.total_amount or 0.0),
        created_at=order.created_at,
    )


def _to_catalog_item(item: Item) -> CatalogItem:
    return CatalogItem(
        id=item.id,
        name=item.name,
        category_id=item.category_id,
        price=item.price or 0.0,
        description=item.description,
        image_url=item.image_url,
    )


class SqlTransactionSource:
    """Orders and their lines, oldest first."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def list_all_transactions(self) -> list[Transaction]:
        query = select(Order).order_by(Order.created_at, Order.id)
        with _unavailable_as("order history"):
            async with self.session_factory() as session:
                orders = (await session.execute(query)).scalars().all()
                return [_to_transaction(order) for order in orders]

    async def list_transactions_for_customer(self, customer_id: str) -> list[Transaction]:
        query = (
            select(Order)
            .where(Order.customer_id == customer_id)
            .order_by(Order.created_at, Order.id)
        )
        with _unavailable_as("order history"):
            async with self.session_factory() as session:
                orders = (await session.execute(query)).scalars().all()
                return [_to_transaction(order) for order in orders]

    async def list_customer_ids(self) -> list[str]:
        query = (
            select(Order.customer_id)
            .where(Order.customer_id.is_not(None))
            .distinct()
            .order_by(Order.customer_id)
        )
        with _unavailable_as("order history"):
            async with self.session_factory() as session:
                return list((await session.execute(query)).scalars().all())


class SqlCatalogSource:
    """Catalog lookups against the items table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def resolve_item(self, item_id: str) -> CatalogItem | None:
        with _unavailable_as("catalog"):
            async with self.session_factory() as session:
                item = await session.get(Item, item_id)
                return _to_catalog_item(item) if item else None

    async def list_items(self) -> list[CatalogItem]:
        with _unavailable_as("catalog"):
            async with self.session_factory() as session:
                items = (await session.execute(select(Item).order_by(Item.name))).scalars().all()
                return [_to_catalog_item(item) for item in items]


class SqlSummaryStore:
    """Customer summaries with row-locked read-modify-write."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get(self, customer_id: str) -> CustomerAnalyticsSummary | None:
        summary, _ = await self.get_versioned(customer_id)
        return summary

    async def get_versioned(
        self, customer_id: str
    ) -> tuple[CustomerAnalyticsSummary | None, int]:
        with _unavailable_as("customer analytics store"):
            async with self.session_factory() as session:
                record = await session.get(CustomerAnalyticsRecord, customer_id)
                if record is None:
                    return None, 0
                return CustomerAnalyticsSummary.model_validate(record.summary), record.version

    async def put(
        self,
        customer_id: str,
        summary: CustomerAnalyticsSummary,
        expected_version: int | None = None,
    ) -> int:
        with _unavailable_as("customer analytics store"):
            async with self.session_factory() as session, session.begin():
                record = await self._lock_record(session, customer_id)
                current_version = record.version if record else 0
                if expected_version is not None and expected_version != current_version:
                    raise SummaryConflictError(customer_id, expected_version, current_version)
                return self._write(session, record, customer_id, summary)

    async def update(
        self, customer_id: str, mutate: SummaryMutation
    ) -> CustomerAnalyticsSummary:
        for attempt in range(1, MAX_UPDATE_ATTEMPTS + 1):
            try:
                with _unavailable_as("customer analytics store"):
                    async with self.session_factory() as session, session.begin():
                        record = await self._lock_record(session, customer_id)
                        current = (
                            CustomerAnalyticsSummary.model_validate(record.summary)
                            if record
                            else None
                        )
                        updated = mutate(current)
                        self._write(session, record, customer_id, updated)
                        return updated
            except DependencyUnavailableError as e:
                # Two first purchases racing on the insert: retry against the row
                if isinstance(e.__cause__, IntegrityError) and attempt < MAX_UPDATE_ATTEMPTS:
                    logger.info("Summary insert raced, retrying", customer_id=customer_id)
                    continue
                raise
        raise AssertionError("unreachable")

    async def list_all(self) -> list[CustomerAnalyticsSummary]:
        with _unavailable_as("customer analytics store"):
            async with self.session_factory() as session:
                records = (
                    await session.execute(
                        select(CustomerAnalyticsRecord).order_by(
                            CustomerAnalyticsRecord.customer_id
                        )
                    )
                ).scalars().all()

        summaries = []
        for record in records:
            try:
                summaries.append(CustomerAnalyticsSummary.model_validate(record.summary))
            except ValidationError as e:
                logger.warning(
                    "Skipping malformed customer summary",
                    customer_id=record.customer_id,
                    error=str(e),
                )
        return summaries

    async def _lock_record(
        self, session: AsyncSession, customer_id: str
    ) -> CustomerAnalyticsRecord | None:
        query = (
            select(CustomerAnalyticsRecord)
            .where(CustomerAnalyticsRecord.customer_id == customer_id)
            .with_for_update()
        )
        return (await session.execute(query)).scalar_one_or_none()

    def _write(
        self,
        session: AsyncSession,
        record: CustomerAnalyticsRecord | None,
        customer_id: str,
        summary: CustomerAnalyticsSummary,
    ) -> int:
        document = summary.model_dump(mode="json")
        if record is None:
            session.add(
                CustomerAnalyticsRecord(customer_id=customer_id, summary=document, version=1)
            )
            return 1
        record.summary = document
        record.version += 1
        return record.version
