"""
分數調整策略

Score adjusters rewrite ``adjusted_score`` after a genome has been scored.
The engine resets ``adjusted_score`` to the raw score and then runs every
adjuster once, in registration order.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Any

from .base import EvolutionStrategy
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class ScoreContext:
    """What an adjuster may consult besides the genome itself."""
    species: Optional[Any]
    comparator: Any
    iteration: int = 0


class AdjustScore(EvolutionStrategy):
    """
    分數調整器基類
    """

    def __init__(self):
        super().__init__()
        self.name = "score_adjuster"

    def apply(self, genome, context: ScoreContext):
        """
        Adjust ``genome.adjusted_score`` in place

        Args:
            genome: scored genome
            context: species statistics and the selection comparator
        """
        raise NotImplementedError("子類必須實現 apply 方法")


class ComplexityAdjustedScore(AdjustScore):
    """
    Penalize genomes larger than ``penalty_threshold``.

    The penalty starts at ``initial_penalty`` and grows linearly to
    ``full_penalty`` at ``full_penalty_threshold``.
    """

    def __init__(self, penalty_threshold: int = 10, full_penalty_threshold: int = 50,
                 initial_penalty: float = 0.2, full_penalty: float = 2.0):
        super().__init__()
        if full_penalty_threshold <= penalty_threshold:
            raise ConfigurationError(
                f"full_penalty_threshold ({full_penalty_threshold}) must exceed "
                f"penalty_threshold ({penalty_threshold})")
        self.name = "complexity"
        self.penalty_threshold = penalty_threshold
        self.full_penalty_threshold = full_penalty_threshold
        self.initial_penalty = initial_penalty
        self.full_penalty = full_penalty

    def penalty_for(self, size: int) -> float:
        if size <= self.penalty_threshold:
            return 0.0
        if size >= self.full_penalty_threshold:
            return self.full_penalty
        over = size - self.penalty_threshold
        span = self.full_penalty_threshold - self.penalty_threshold
        return self.initial_penalty + (self.full_penalty - self.initial_penalty) * over / span

    def apply(self, genome, context: ScoreContext):
        penalty = self.penalty_for(genome.size())
        if penalty > 0:
            genome.adjusted_score = context.comparator.apply_penalty(genome.adjusted_score, penalty)


class StagnationAdjustedScore(AdjustScore):
    """Penalize members of species that have not improved for ``threshold`` generations."""

    def __init__(self, threshold: int = 15, penalty: float = 0.5):
        super().__init__()
        if threshold < 1:
            raise ConfigurationError(f"threshold must be >= 1, got {threshold}")
        self.name = "stagnation"
        self.threshold = threshold
        self.penalty = penalty

    def apply(self, genome, context: ScoreContext):
        species = context.species
        if species is not None and species.gens_no_improvement > self.threshold:
            genome.adjusted_score = context.comparator.apply_penalty(genome.adjusted_score, self.penalty)
