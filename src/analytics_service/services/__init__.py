"""Business logic services."""

from analytics_service.services.customer_analytics import CustomerAnalyticsService
from analytics_service.services.global_analytics import GlobalAnalyticsService
from analytics_service.services.recommendation_resolver import (
    RecommendationResolver,
    RecommendationService,
)
from analytics_service.services.rule_engine import RuleEngine
from analytics_service.services.suggester import GeminiSuggester

__all__ = [
    "CustomerAnalyticsService",
    "GlobalAnalyticsService",
    "RecommendationResolver",
    "RecommendationService",
    "RuleEngine",
    "GeminiSuggester",
]
