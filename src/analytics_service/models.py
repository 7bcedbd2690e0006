"""Domain records shared by the analytics services.

Everything crossing a store or API boundary is parsed into one of these
models, so malformed documents are rejected where they enter instead of
propagating as partial dictionaries.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from shared.constants import (
    CATEGORY_WEIGHTING_INCREMENTAL,
    CATEGORY_WEIGHTING_NORMALIZED,
)

CategoryWeighting = Literal["incremental", "normalized"]


# =============================================================================
# Transactions and catalog
# =============================================================================


class LineItem(BaseModel):
    """One purchased line of an order."""

    item_id: str = Field(..., min_length=1)
    item_name: str | None = None
    category_id: str | None = None
    quantity: int = Field(default=1, ge=1)


class Transaction(BaseModel):
    """A completed order and the items bought together in it."""

    order_id: str = Field(..., min_length=1)
    customer_id: str | None = None
    items: list[LineItem] = Field(default_factory=list)
    total_amount: float = Field(default=0.0, ge=0)
    created_at: datetime | None = None

    @property
    def item_ids(self) -> list[str]:
        """Distinct item IDs in first-seen order."""
        return list(dict.fromkeys(line.item_id for line in self.items))


class CatalogItem(BaseModel):
    """A sellable item as the catalog describes it."""

    id: str = Field(..., min_length=1)
    name: str
    category_id: str | None = None
    price: float = 0.0
    description: str | None = None
    image_url: str | None = None


# =============================================================================
# Customer summaries
# =============================================================================


class PurchaseRecord(BaseModel):
    """One entry of a customer's purchase history."""

    order_id: str
    item_ids: list[str]
    timestamp: datetime | None = None
    total_amount: float = 0.0
    categories: list[str] = Field(default_factory=list)


class CustomerAnalyticsSummary(BaseModel):
    """Per-customer purchase statistics.

    ``category_preference`` holds raw +0.1 accumulators after incremental
    updates and fractions summing to 1 after a full regeneration;
    ``category_weighting`` records which of the two it currently is.
    """

    customer_id: str = Field(..., min_length=1)
    item_frequency: dict[str, int] = Field(default_factory=dict)
    category_preference: dict[str, float] = Field(default_factory=dict)
    category_weighting: CategoryWeighting = CATEGORY_WEIGHTING_INCREMENTAL
    purchase_history: list[PurchaseRecord] = Field(default_factory=list)
    average_order_value: float = Field(default=0.0, ge=0)
    total_orders: int = Field(default=0, ge=0)
    frequent_items: list[str] = Field(default_factory=list)
    association_rules: dict[str, list[str]] = Field(default_factory=dict)
    last_purchase_at: datetime | None = None

    @property
    def is_normalized(self) -> bool:
        return self.category_weighting == CATEGORY_WEIGHTING_NORMALIZED


# =============================================================================
# Store-wide analytics
# =============================================================================


class AssociationRule(BaseModel):
    """Single-antecedent rule ``antecedent => consequent``."""

    antecedent_id: str
    consequent_id: str
    antecedent: str
    consequent: str
    confidence: float = Field(..., ge=0, le=1)
    support: float = Field(..., ge=0, le=1)
    lift: float = Field(..., ge=0)


class PopularCombination(BaseModel):
    """An unordered item pair and how many orders contained both."""

    item1_id: str
    item2_id: str
    item1: str
    item2: str
    frequency: int = Field(..., ge=1)


class GlobalAnalytics(BaseModel):
    """Store-wide totals folded from every customer summary."""

    total_customers: int = 0
    total_orders: int = 0
    total_revenue: float = 0.0
    revenue_mode: Literal["approximate", "exact"] = "approximate"
    average_order_value: float = 0.0
    popular_items: dict[str, int] = Field(default_factory=dict)
    category_preferences: dict[str, float] = Field(default_factory=dict)
    association_rules: list[AssociationRule] = Field(default_factory=list)
    degraded: bool = False
    generated_at: datetime | None = None


# =============================================================================
# Recommendations
# =============================================================================


class CartItem(BaseModel):
    """An item reference from the caller's cart or purchase history."""

    id: str = Field(..., min_length=1)
    name: str | None = None
    category_id: str | None = None


class RecommendationResult(BaseModel):
    """Resolved recommendations and the path that produced them."""

    items: list[CatalogItem] = Field(default_factory=list)
    source: Literal["suggester", "fallback", "none"] = "none"
