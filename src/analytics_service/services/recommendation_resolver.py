"""Cart recommendation resolution.

Pipeline per request: primary suggester -> popularity fallback when the
suggester yields nothing usable -> drop cart items -> resolve IDs against
the catalog. There is no retry; each source is asked at most once.

The catalog snapshot may be served from cache and only feeds the prompt;
the final IDs are looked up in the live catalog so deleted items never
reach the response.
"""

import asyncio
from collections.abc import Awaitable, Callable, Mapping, Sequence

import structlog

from analytics_service.exceptions import InvalidInputError
from analytics_service.infrastructure.redis import CacheService
from analytics_service.interfaces import CatalogSource
from analytics_service.models import CartItem, CatalogItem, RecommendationResult
from analytics_service.services.suggester import Suggester, SuggestionResult
from shared.constants import (
    CATALOG_SNAPSHOT_CACHE_KEY,
    FALLBACK_RECOMMENDATIONS,
    MAX_RECOMMENDATIONS,
)

logger = structlog.get_logger()

PopularityProvider = Callable[[], Awaitable[Mapping[str, int]]]
ItemResolver = Callable[[str], Awaitable[CatalogItem | None]]


def validate_cart(cart: Sequence[CartItem]) -> None:
    if not cart:
        raise InvalidInputError("current_cart must contain at least one item")


def rank_by_popularity(
    popularity: Mapping[str, int],
    exclude_ids: set[str],
    limit: int = FALLBACK_RECOMMENDATIONS,
) -> list[str]:
    """Most purchased item IDs not in ``exclude_ids``; ties keep mapping order."""
    ranked = sorted(popularity.items(), key=lambda x: x[1], reverse=True)
    return [item_id for item_id, _ in ranked if item_id not in exclude_ids][:limit]


class RecommendationResolver:
    """Combines the external suggester with a deterministic fallback."""

    def __init__(
        self,
        timeout_seconds: float = 8.0,
        max_results: int = MAX_RECOMMENDATIONS,
        fallback_size: int = FALLBACK_RECOMMENDATIONS,
    ):
        self.timeout_seconds = timeout_seconds
        self.max_results = max_results
        self.fallback_size = fallback_size

    async def recommend(
        self,
        cart: Sequence[CartItem],
        history: Sequence[CartItem] | None,
        catalog: Sequence[CatalogItem],
        suggester: Suggester | None,
        popularity: PopularityProvider,
        resolve: ItemResolver | None = None,
    ) -> RecommendationResult:
        """
        Resolve up to ``max_results`` catalog items to suggest for a cart.

        Args:
            cart: Items currently in the cart (must not be empty)
            history: Optional purchase history of the customer
            catalog: Catalog snapshot shown to the suggester
            suggester: Primary suggester; None goes straight to the fallback
            popularity: Loads per-item purchase counts for the fallback
            resolve: Live catalog lookup for the final IDs; defaults to the
                snapshot

        Returns:
            Resolved items and which path produced them. An empty list is a
            valid outcome.
        """
        validate_cart(cart)
        history = list(history or [])
        cart_ids = {item.id for item in cart}

        source = "suggester"
        candidates: list[str] = []
        if suggester is not None:
            suggestion = await self._ask_suggester(suggester, catalog, cart, history)
            if suggestion.ok:
                candidates = [i for i in suggestion.item_ids if i not in cart_ids]
            else:
                logger.warning("Suggester gave no candidates", reason=suggestion.error)

        if not candidates:
            logger.info("Using popularity fallback for recommendations")
            source = "fallback"
            try:
                counts = await popularity()
            except Exception as e:
                logger.warning("Popularity data unavailable", error=str(e))
                counts = {}
            candidates = rank_by_popularity(counts, cart_ids, self.fallback_size)

        candidate_ids = [
            item_id for item_id in dict.fromkeys(candidates) if item_id not in cart_ids
        ][: self.max_results]

        items = await self._resolve(candidate_ids, catalog, resolve)
        dropped = len(candidate_ids) - len(items)
        if dropped:
            logger.info("Dropped recommendations missing from catalog", dropped=dropped)

        return RecommendationResult(items=items, source=source if items else "none")

    async def _resolve(
        self,
        candidate_ids: Sequence[str],
        catalog: Sequence[CatalogItem],
        resolve: ItemResolver | None,
    ) -> list[CatalogItem]:
        if resolve is None:
            by_id = {item.id: item for item in catalog}
            return [by_id[item_id] for item_id in candidate_ids if item_id in by_id]

        items: list[CatalogItem] = []
        for item_id in candidate_ids:
            try:
                item = await resolve(item_id)
            except Exception as e:
                logger.warning("Catalog lookup failed, dropping item", item_id=item_id, error=str(e))
                continue
            if item is not None:
                items.append(item)
        return items

    async def _ask_suggester(
        self,
        suggester: Suggester,
        catalog: Sequence[CatalogItem],
        cart: Sequence[CartItem],
        history: Sequence[CartItem],
    ) -> SuggestionResult:
        try:
            result = await asyncio.wait_for(
                suggester.suggest(catalog, cart, history), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            return SuggestionResult.failure("timeout")
        except Exception as e:
            logger.warning("Suggester raised", error=str(e), error_type=type(e).__name__)
            return SuggestionResult.failure("suggester_error")

        if not isinstance(result, SuggestionResult):
            return SuggestionResult.failure("malformed_response")
        return result


class RecommendationService:
    """Feeds the resolver from the catalog and the order history."""

    def __init__(
        self,
        catalog: CatalogSource,
        suggester: Suggester | None,
        popularity: PopularityProvider,
        cache: CacheService | None = None,
        resolver: RecommendationResolver | None = None,
        catalog_cache_ttl_seconds: int = 300,
    ):
        self.catalog = catalog
        self.suggester = suggester
        self.popularity = popularity
        self.cache = cache
        self.resolver = resolver or RecommendationResolver()
        self.catalog_cache_ttl_seconds = catalog_cache_ttl_seconds

    async def recommend(
        self,
        cart: Sequence[CartItem],
        history: Sequence[CartItem] | None = None,
    ) -> RecommendationResult:
        validate_cart(cart)
        catalog = await self._catalog_snapshot()
        return await self.resolver.recommend(
            cart,
            history,
            catalog,
            self.suggester,
            self.popularity,
            resolve=self.catalog.resolve_item,
        )

    async def _catalog_snapshot(self) -> list[CatalogItem]:
        if self.cache:
            cached = await self.cache.get(CATALOG_SNAPSHOT_CACHE_KEY)
            if cached is not None:
                return [CatalogItem.model_validate(item) for item in cached]

        try:
            items = await self.catalog.list_items()
        except Exception as e:
            logger.warning("Catalog unavailable, recommendations cannot be resolved", error=str(e))
            return []

        if self.cache:
            await self.cache.set(
                CATALOG_SNAPSHOT_CACHE_KEY,
                [item.model_dump(mode="json") for item in items],
                ttl_seconds=self.catalog_cache_ttl_seconds,
            )
        return items
