"""Customer and store-wide analytics endpoints."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from analytics_service.api.dependencies import (
    get_customer_analytics_service,
    get_global_analytics_service,
)
from analytics_service.models import (
    AssociationRule,
    CustomerAnalyticsSummary,
    GlobalAnalytics,
    LineItem,
    PopularCombination,
)
from analytics_service.services.customer_analytics import CustomerAnalyticsService
from analytics_service.services.global_analytics import GlobalAnalyticsService

router = APIRouter()


# =============================================================================
# Request / Response Models
# =============================================================================


class PurchasedItem(BaseModel):
    """One purchased line as reported by the POS."""

    id: str = Field(..., min_length=1, description="Item identifier")
    category_id: str | None = Field(None, description="Category, looked up in the catalog when omitted")
    quantity: int = Field(1, ge=1)


class PurchaseRequest(BaseModel):
    """Request model for recording a purchase."""

    items: list[PurchasedItem] = Field(..., description="Purchased items")
    total_amount: float = Field(..., description="Order total")


class CustomerAnalyticsResponse(CustomerAnalyticsSummary):
    """A customer's summary; ``degraded`` marks an empty default served while the store is down."""

    degraded: bool = False


class PurchaseResponse(BaseModel):
    success: bool
    analytics: CustomerAnalyticsSummary


class RegenerationResponse(BaseModel):
    message: str
    total_customers: int
    success_count: int
    error_count: int
    total_orders: int


class AssociationRulesResponse(BaseModel):
    rules: list[AssociationRule]
    degraded: bool = False


class PopularCombinationsResponse(BaseModel):
    combinations: list[PopularCombination]
    degraded: bool = False


# =============================================================================
# Customer Endpoints
# =============================================================================


@router.get("/customers/{customer_id}", response_model=CustomerAnalyticsResponse)
async def get_customer_analytics(
    customer_id: str,
    service: CustomerAnalyticsService = Depends(get_customer_analytics_service),
) -> CustomerAnalyticsResponse:
    """
    Get the analytics summary of one customer (404 before their first purchase).

    When the summary store is unreachable the response is an empty summary
    with ``degraded: true`` rather than an error.
    """
    summary, degraded = await service.read_summary(customer_id)
    return CustomerAnalyticsResponse(**summary.model_dump(), degraded=degraded)


@router.post("/customers/{customer_id}/purchases", response_model=PurchaseResponse)
async def record_purchase(
    customer_id: str,
    request: PurchaseRequest,
    service: CustomerAnalyticsService = Depends(get_customer_analytics_service),
) -> PurchaseResponse:
    """
    Fold a purchase into the customer's summary.

    Not idempotent: posting the same purchase twice records two purchases.
    Category preference grows by a fixed 0.1 per line item and is not
    normalized on this path.
    """
    items = [
        LineItem(item_id=item.id, category_id=item.category_id, quantity=item.quantity)
        for item in request.items
    ]
    summary = await service.record_purchase(customer_id, items, request.total_amount)
    return PurchaseResponse(success=True, analytics=summary)


@router.post("/customers/{customer_id}/regenerate", response_model=CustomerAnalyticsSummary)
async def regenerate_customer_analytics(
    customer_id: str,
    service: CustomerAnalyticsService = Depends(get_customer_analytics_service),
) -> CustomerAnalyticsSummary:
    """Rebuild one customer's summary from their order history (idempotent)."""
    return await service.regenerate_customer(customer_id)


@router.post("/regenerate", response_model=RegenerationResponse)
async def regenerate_all_analytics(
    service: CustomerAnalyticsService = Depends(get_customer_analytics_service),
) -> RegenerationResponse:
    """
    Rebuild the summary of every customer with at least one order.

    Admin repair tool. Customers are rewritten one transaction each; a
    failing customer is counted and skipped.
    """
    result = await service.regenerate_all()
    return RegenerationResponse(message="Customer analytics regeneration completed", **result)


# =============================================================================
# Store-wide Endpoints
# =============================================================================


@router.get("/global", response_model=GlobalAnalytics)
async def get_global_analytics(
    service: GlobalAnalyticsService = Depends(get_global_analytics_service),
) -> GlobalAnalytics:
    """
    Store-wide totals and the current top association rules.

    **Revenue:** in the default ``approximate`` mode revenue is
    reconstructed as average order value x orders per customer, not summed
    from actual order amounts.
    """
    return await service.get_global_analytics()


@router.get("/association-rules", response_model=AssociationRulesResponse)
async def get_association_rules(
    service: GlobalAnalyticsService = Depends(get_global_analytics_service),
) -> AssociationRulesResponse:
    """Top 5 rules by confidence (confidence > 0.1, support > 0.05)."""
    rules, degraded = await service.get_association_rules()
    return AssociationRulesResponse(rules=rules, degraded=degraded)


@router.get("/popular-combinations", response_model=PopularCombinationsResponse)
async def get_popular_combinations(
    service: GlobalAnalyticsService = Depends(get_global_analytics_service),
) -> PopularCombinationsResponse:
    """Top 10 item pairs bought together."""
    combinations, degraded = await service.get_popular_combinations()
    return PopularCombinationsResponse(combinations=combinations, degraded=degraded)
