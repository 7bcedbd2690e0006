"""External generative suggester.

The suggester proposes item IDs for a cart. It is best-effort: every
failure mode (missing key, transport error, timeout, unparsable reply)
comes back as a failed ``SuggestionResult`` rather than an exception.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

import httpx
import orjson
import structlog

from analytics_service.config import Settings
from analytics_service.models import CartItem, CatalogItem
from shared.constants import MAX_RECOMMENDATIONS

logger = structlog.get_logger()


@dataclass
class SuggestionResult:
    """Candidate item IDs, or the reason none could be produced."""

    item_ids: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, item_ids: list[str]) -> "SuggestionResult":
        return cls(item_ids=item_ids)

    @classmethod
    def failure(cls, reason: str) -> "SuggestionResult":
        return cls(error=reason)


class Suggester(Protocol):
    """Anything that proposes item IDs for a cart."""

    async def suggest(
        self,
        catalog: Sequence[CatalogItem],
        cart: Sequence[CartItem],
        history: Sequence[CartItem],
    ) -> SuggestionResult: ...


def parse_suggestion_text(text: str) -> SuggestionResult:
    """Parse a model reply that should be a JSON array of item ID strings.

    Replies wrapped in Markdown code fences are accepted.
    """
    cleaned = text.replace("```json", "").replace("```", "").strip()
    try:
        parsed = orjson.loads(cleaned)
    except orjson.JSONDecodeError:
        return SuggestionResult.failure("unparsable_response")

    if not isinstance(parsed, list) or not all(isinstance(i, str) for i in parsed):
        return SuggestionResult.failure("malformed_response")
    return SuggestionResult.success([i for i in parsed if i])


def build_prompt(
    catalog: Sequence[CatalogItem],
    cart: Sequence[CartItem],
    history: Sequence[CartItem],
    limit: int = MAX_RECOMMENDATIONS,
) -> str:
    """Prompt listing the catalog, cart and history for the model."""
    catalog_json = orjson.dumps(
        [{"id": i.id, "name": i.name, "categoryId": i.category_id} for i in catalog]
    ).decode()
    cart_json = orjson.dumps([c.model_dump(exclude_none=True) for c in cart]).decode()
    history_json = orjson.dumps([h.model_dump(exclude_none=True) for h in history]).decode()

    return f"""You recommend add-on items for a retail point-of-sale system.

All items available in the store (JSON):
{catalog_json}

The customer's current cart (JSON):
{cart_json}

The customer's recent purchase history (JSON, may be empty):
{history_json}

Recommend up to {limit} additional items for this customer.
Reply with ONLY a JSON array of item ID strings, for example ["item_1", "item_2"].
Do not include items already in the cart and do not add any other text."""


class GeminiSuggester:
    """Suggester backed by the Gemini ``generateContent`` REST endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-1.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout_seconds: float = 8.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeminiSuggester":
        return cls(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            base_url=settings.gemini_api_base_url,
            timeout_seconds=settings.suggester_timeout_seconds,
        )

    async def suggest(
        self,
        catalog: Sequence[CatalogItem],
        cart: Sequence[CartItem],
        history: Sequence[CartItem],
    ) -> SuggestionResult:
        if not self.api_key:
            return SuggestionResult.failure("not_configured")

        payload = {"contents": [{"parts": [{"text": build_prompt(catalog, cart, history)}]}]}
        url = f"{self.base_url}/models/{self.model}:generateContent"
        headers = {"x-goog-api-key": self.api_key}

        try:
            if self._client is not None:
                response = await self._client.post(
                    url, json=payload, headers=headers, timeout=self.timeout_seconds
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()
            text = response.json()["candidates"][0]["content"]["parts"][0]["text"]
        except httpx.HTTPError as e:
            logger.warning("Suggester request failed", error=str(e), error_type=type(e).__name__)
            return SuggestionResult.failure("request_failed")
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning("Suggester returned an unexpected payload", error=str(e))
            return SuggestionResult.failure("malformed_response")

        result = parse_suggestion_text(text)
        if not result.ok:
            logger.warning("Failed to parse suggester response", reason=result.error, text=text[:200])
        return result
