"""Recommendation API endpoints."""

from datetime import datetime, timezone
from typing import Literal
from uuid import uuid4

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from analytics_service.api.dependencies import get_recommendation_service
from analytics_service.models import CartItem, CatalogItem
from analytics_service.services.recommendation_resolver import RecommendationService

logger = structlog.get_logger()

router = APIRouter()


class RecommendationRequest(BaseModel):
    """Cart and optional history to recommend for."""

    current_cart: list[CartItem] = Field(..., description="Items currently in the cart")
    user_history: list[CartItem] | None = Field(
        None, description="Items from the customer's recent purchases"
    )


class RecommendationResponse(BaseModel):
    """Resolved recommendations."""

    recommendations: list[CatalogItem]
    source: Literal["suggester", "fallback", "none"]
    request_id: str
    generated_at: str


@router.post("", response_model=RecommendationResponse)
async def get_recommendations(
    request: RecommendationRequest,
    service: RecommendationService = Depends(get_recommendation_service),
) -> RecommendationResponse:
    """
    Recommend up to 5 items to add to a cart.

    **Algorithm:**
    1. Ask the generative suggester for item IDs (bounded by a timeout)
    2. If it fails or returns nothing usable, take the 3 most purchased items
    3. Drop anything already in the cart
    4. Resolve IDs against the catalog, silently dropping deleted items

    An empty list is a normal response, not an error.
    """
    request_id = structlog.contextvars.get_contextvars().get("request_id") or str(uuid4())
    result = await service.recommend(request.current_cart, request.user_history)

    logger.info(
        "Recommendations served",
        request_id=request_id,
        cart_size=len(request.current_cart),
        source=result.source,
        count=len(result.items),
    )

    return RecommendationResponse(
        recommendations=result.items,
        source=result.source,
        request_id=request_id,
        generated_at=datetime.now(timezone.utc).isoformat(),
    )
