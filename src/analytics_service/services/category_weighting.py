"""Category preference weighting strategies.

Two formulas are in use and they are not interchangeable:

- ``IncrementalWeighting`` (purchase path) adds a fixed 0.1 per line item
  to the existing raw accumulators and never normalizes.
- ``NormalizedWeighting`` (regeneration path) counts category hits over the
  whole order log and divides by the total, so weights sum to 1.

Switching either path to the other formula changes stored summaries.
"""

from collections.abc import Iterable, Mapping

from shared.constants import (
    CATEGORY_WEIGHTING_INCREMENTAL,
    CATEGORY_WEIGHTING_NORMALIZED,
    INCREMENTAL_CATEGORY_WEIGHT,
)


class IncrementalWeighting:
    """Unnormalized +0.1 accumulation per category occurrence."""

    name = CATEGORY_WEIGHTING_INCREMENTAL

    def __init__(self, increment: float = INCREMENTAL_CATEGORY_WEIGHT):
        self.increment = increment

    def apply(
        self, existing: Mapping[str, float], occurrences: Iterable[str]
    ) -> dict[str, float]:
        weights = dict(existing)
        for category_id in occurrences:
            weights[category_id] = weights.get(category_id, 0.0) + self.increment
        return weights


class NormalizedWeighting:
    """Count-then-normalize over every occurrence; ignores prior weights."""

    name = CATEGORY_WEIGHTING_NORMALIZED

    def apply(
        self, existing: Mapping[str, float], occurrences: Iterable[str]
    ) -> dict[str, float]:
        counts: dict[str, int] = {}
        for category_id in occurrences:
            counts[category_id] = counts.get(category_id, 0) + 1

        total = sum(counts.values())
        if total == 0:
            return {}
        return {category_id: count / total for category_id, count in counts.items()}
