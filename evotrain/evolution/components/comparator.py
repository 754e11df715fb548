"""
基因組比較器

Total orders over genomes. The "best" comparator ranks on the raw score and
decides the true best genome; the "selection" comparator ranks on the
adjusted score and drives tournaments, elitism and speciation.
"""

import math
from functools import cmp_to_key

SCORE = 'score'
ADJUSTED_SCORE = 'adjusted_score'


class GenomeComparator:
    """
    Direction-aware genome comparator

    ``compare(a, b)`` is negative when ``a`` is better than ``b``, so sorting
    with ``sort_key`` puts the best genome first. NaN scores rank below any
    real value in both directions.
    """

    def __init__(self, field: str = SCORE, minimize: bool = False):
        if field not in (SCORE, ADJUSTED_SCORE):
            raise ValueError(f"field must be '{SCORE}' or '{ADJUSTED_SCORE}', got {field}")
        self.field = field
        self.minimize = minimize
        self.sort_key = cmp_to_key(self.compare)

    def should_minimize(self) -> bool:
        return self.minimize

    def value_of(self, genome) -> float:
        return getattr(genome, self.field)

    def compare(self, genome1, genome2) -> int:
        v1 = self.value_of(genome1)
        v2 = self.value_of(genome2)

        nan1, nan2 = math.isnan(v1), math.isnan(v2)
        if nan1 or nan2:
            return int(nan1) - int(nan2)

        if v1 == v2:
            return 0
        if self.minimize:
            return -1 if v1 < v2 else 1
        return -1 if v1 > v2 else 1

    def is_better_than(self, genome1, genome2) -> bool:
        """Strict ordering: equal scores are never better."""
        return self.compare(genome1, genome2) < 0

    def is_better_value(self, value1: float, value2: float) -> bool:
        if math.isnan(value1):
            return False
        if math.isnan(value2):
            return True
        return value1 < value2 if self.minimize else value1 > value2

    def apply_bonus(self, value: float, bonus: float) -> float:
        """Improve ``value`` by the fraction ``bonus``."""
        amount = abs(value) * bonus
        return value - amount if self.minimize else value + amount

    def apply_penalty(self, value: float, penalty: float) -> float:
        """Worsen ``value`` by the fraction ``penalty``."""
        amount = abs(value) * penalty
        return value + amount if self.minimize else value - amount

    def worst_value(self) -> float:
        return math.inf if self.minimize else -math.inf

    def __repr__(self) -> str:
        direction = 'minimize' if self.minimize else 'maximize'
        return f"GenomeComparator(field='{self.field}', {direction})"


def best_comparator(minimize: bool = False) -> GenomeComparator:
    """Comparator on the raw score, used to track the true best genome."""
    return GenomeComparator(SCORE, minimize)


def selection_comparator(minimize: bool = False) -> GenomeComparator:
    """Comparator on the adjusted score, used during selection."""
    return GenomeComparator(ADJUSTED_SCORE, minimize)
