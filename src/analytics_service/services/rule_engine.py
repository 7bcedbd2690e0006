"""Market-basket rule engine.

Computes support, confidence and lift over the full transaction history and
ranks frequent item pairs. One pass over the transactions memoizes, per
item, the rows containing it and, per co-occurring pair, how many rows hold
both, so every metric is a lookup instead of a rescan of all transactions.
"""

from collections import Counter
from collections.abc import Iterable, Sequence
from functools import reduce

import numpy as np
import structlog

from analytics_service.models import AssociationRule, PopularCombination, Transaction
from shared.constants import (
    MIN_RULE_CONFIDENCE,
    MIN_RULE_SUPPORT,
    RULE_SEARCH_LIMIT,
    TOP_COMBINATIONS_LIMIT,
    TOP_RULES_LIMIT,
    UNKNOWN_ITEM_NAME,
)

logger = structlog.get_logger()


def count_item_lines(transactions: Iterable[Transaction]) -> dict[str, int]:
    """Line occurrences per item across all transactions.

    Counts one per order line, matching how the order-item log is tallied
    for popularity, so an item listed twice in an order counts twice.
    """
    counts: Counter[str] = Counter()
    for transaction in transactions:
        for line in transaction.items:
            counts[line.item_id] += 1
    return dict(counts)


class RuleEngine:
    """Association metrics over a fixed set of transactions."""

    def __init__(self, transactions: Sequence[Transaction]):
        self.transactions = list(transactions)
        self.item_names: dict[str, str] = {}

        rows: dict[str, list[int]] = {}
        # Canonical (lower ID, higher ID) pairs in first-encountered order
        self._pair_counts: dict[tuple[str, str], int] = {}

        for row, transaction in enumerate(self.transactions):
            for line in transaction.items:
                if line.item_name and line.item_id not in self.item_names:
                    self.item_names[line.item_id] = line.item_name

            item_ids = transaction.item_ids
            for item_id in item_ids:
                rows.setdefault(item_id, []).append(row)
            for i in range(len(item_ids)):
                for j in range(i + 1, len(item_ids)):
                    a, b = item_ids[i], item_ids[j]
                    pair = (a, b) if a < b else (b, a)
                    self._pair_counts[pair] = self._pair_counts.get(pair, 0) + 1

        # Ascending item-ID order fixes the rule enumeration order
        self.items: list[str] = sorted(rows)
        self._rows = {item_id: np.asarray(r, dtype=np.int64) for item_id, r in rows.items()}

    @property
    def transaction_count(self) -> int:
        return len(self.transactions)

    def name_of(self, item_id: str) -> str:
        return self.item_names.get(item_id, UNKNOWN_ITEM_NAME)

    # ==========================================================================
    # Metrics
    # ==========================================================================

    def count_containing(self, itemset: Iterable[str]) -> int:
        """Number of transactions containing every item of ``itemset``."""
        wanted = sorted(set(itemset))
        if any(item_id not in self._rows for item_id in wanted):
            return 0
        if not wanted:
            return self.transaction_count
        if len(wanted) == 1:
            return len(self._rows[wanted[0]])
        if len(wanted) == 2:
            return self._pair_counts.get((wanted[0], wanted[1]), 0)

        common = reduce(
            lambda a, b: np.intersect1d(a, b, assume_unique=True),
            (self._rows[item_id] for item_id in wanted),
        )
        return int(common.size)

    def support(self, itemset: Iterable[str]) -> float:
        """Fraction of all transactions containing ``itemset``."""
        if self.transaction_count == 0:
            return 0.0
        return self.count_containing(itemset) / self.transaction_count

    def confidence(self, antecedent: Iterable[str], consequent: str) -> float:
        """Fraction of transactions with the antecedent that also hold the consequent."""
        antecedent = list(antecedent)
        antecedent_count = self.count_containing(antecedent)
        if antecedent_count == 0:
            return 0.0
        return self.count_containing([*antecedent, consequent]) / antecedent_count

    def lift(self, antecedent: Iterable[str], consequent: str) -> float:
        """Confidence normalized by the consequent's baseline support."""
        consequent_support = self.support([consequent])
        if consequent_support == 0:
            return 0.0
        return self.confidence(antecedent, consequent) / consequent_support

    def item_counts(self) -> dict[str, int]:
        return count_item_lines(self.transactions)

    # ==========================================================================
    # Rankings
    # ==========================================================================

    def popular_combinations(
        self, limit: int = TOP_COMBINATIONS_LIMIT
    ) -> list[PopularCombination]:
        """Most frequent 2-item combinations, ties in first-encountered order."""
        ranked = sorted(self._pair_counts.items(), key=lambda x: x[1], reverse=True)

        return [
            PopularCombination(
                item1_id=item1,
                item2_id=item2,
                item1=self.name_of(item1),
                item2=self.name_of(item2),
                frequency=count,
            )
            for (item1, item2), count in ranked[:limit]
        ]

    def association_rules(
        self,
        limit: int = TOP_RULES_LIMIT,
        search_limit: int = RULE_SEARCH_LIMIT,
    ) -> list[AssociationRule]:
        """
        Top single-antecedent rules by confidence.

        Pairs are enumerated in ascending item-ID order and the search stops
        once ``search_limit`` rules clear both thresholds, so with more
        qualifying pairs than that the result depends on enumeration order.
        Pairs that never co-occur have zero support and are not visited.

        Args:
            limit: Number of rules returned after sorting
            search_limit: Number of accepted rules after which the search stops

        Returns:
            Rules sorted by descending confidence
        """
        rules: list[AssociationRule] = []
        n = self.transaction_count
        if n == 0:
            return rules

        # Sorted canonical pairs visit (i, j), i < j, in nested-loop order
        for (antecedent_id, consequent_id) in sorted(self._pair_counts):
            if len(rules) >= search_limit:
                break

            both = self._pair_counts[(antecedent_id, consequent_id)]
            antecedent_count = len(self._rows[antecedent_id])
            confidence = both / antecedent_count
            support = both / n
            lift = confidence / (len(self._rows[consequent_id]) / n)

            if confidence > MIN_RULE_CONFIDENCE and support > MIN_RULE_SUPPORT:
                rules.append(
                    AssociationRule(
                        antecedent_id=antecedent_id,
                        consequent_id=consequent_id,
                        antecedent=self.name_of(antecedent_id),
                        consequent=self.name_of(consequent_id),
                        confidence=confidence,
                        support=support,
                        lift=lift,
                    )
                )

        rules.sort(key=lambda r: r.confidence, reverse=True)

        logger.debug(
            "Association rules computed",
            transactions=n,
            items=len(self.items),
            accepted=len(rules),
        )
        return rules[:limit]


def compute_association_rules(transactions: Sequence[Transaction]) -> list[AssociationRule]:
    """Top rules over the full transaction history."""
    return RuleEngine(transactions).association_rules()


def compute_popular_combinations(
    transactions: Sequence[Transaction],
) -> list[PopularCombination]:
    """Top item pairs over the full transaction history."""
    return RuleEngine(transactions).popular_combinations()
