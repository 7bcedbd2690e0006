"""Shared constants across the application."""

# Association rule thresholds (strict inequalities)
MIN_RULE_CONFIDENCE = 0.1
MIN_RULE_SUPPORT = 0.05

# Rule search stops once this many rules pass the thresholds
RULE_SEARCH_LIMIT = 10
TOP_RULES_LIMIT = 5
TOP_COMBINATIONS_LIMIT = 10

# Customer summaries
FREQUENT_ITEMS_LIMIT = 5
INCREMENTAL_CATEGORY_WEIGHT = 0.1

# Recommendations
MAX_RECOMMENDATIONS = 5
FALLBACK_RECOMMENDATIONS = 3

# Display name for items whose name was never recorded
UNKNOWN_ITEM_NAME = "Unknown"

# Cache keys
CATALOG_SNAPSHOT_CACHE_KEY = "catalog:snapshot"

# Category weighting representations
CATEGORY_WEIGHTING_INCREMENTAL = "incremental"
CATEGORY_WEIGHTING_NORMALIZED = "normalized"
