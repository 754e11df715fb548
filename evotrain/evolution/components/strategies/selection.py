"""
選擇策略模組

Selection strategies pick the index of one member of a species. They never
modify the species.
"""

import logging
import math

from .base import EvolutionStrategy
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


class SelectionStrategy(EvolutionStrategy):
    """
    選擇策略基類
    """

    def __init__(self):
        super().__init__()
        self.name = "selection_strategy"

    def perform_selection(self, rnd, species) -> int:
        """
        Select a member of the species

        Args:
            rnd: numpy random generator
            species: species to select from

        Returns:
            index of the selected genome in ``species.members``
        """
        raise NotImplementedError("子類必須實現 perform_selection 方法")

    def perform_anti_selection(self, rnd, species) -> int:
        """Select a poor member, e.g. one to be replaced."""
        raise NotImplementedError("子類必須實現 perform_anti_selection 方法")

    def select_genome(self, rnd, species):
        return species.members[self.perform_selection(rnd, species)]


class TournamentSelection(SelectionStrategy):
    """
    錦標賽選擇策略

    A random member becomes the champion, then ``rounds`` random challengers
    replace it whenever strictly better under the selection comparator. More
    rounds means more selection pressure; ``rounds=1`` already compares two
    draws.
    """

    def __init__(self, rounds: int = 4):
        """
        Args:
            rounds: number of challengers, at least 1
        """
        super().__init__()
        if rounds < 1:
            raise ConfigurationError(f"rounds must be >= 1, got {rounds}")
        self.name = "tournament"
        self.rounds = rounds

    def perform_selection(self, rnd, species) -> int:
        return self._tournament(rnd, species, anti=False)

    def perform_anti_selection(self, rnd, species) -> int:
        return self._tournament(rnd, species, anti=True)

    def _tournament(self, rnd, species, anti: bool) -> int:
        members = species.members
        count = len(members)
        if count == 0:
            raise ValueError(f"cannot select from empty species {species.species_id}")

        comparator = self._selection_comparator()
        best_index = int(rnd.integers(count))
        best = members[best_index]

        for _ in range(self.rounds):
            competitor_index = int(rnd.integers(count))
            competitor = members[competitor_index]

            # only valid genomes can take over
            if not math.isfinite(competitor.adjusted_score):
                continue

            if anti:
                better = comparator.is_better_than(best, competitor)
            else:
                better = comparator.is_better_than(competitor, best)
            if better:
                best = competitor
                best_index = competitor_index

        return best_index


class TruncationSelection(SelectionStrategy):
    """
    截斷選擇策略

    Picks uniformly from the top ``percent`` of a species. Members must be
    sorted best first, which every shipped speciation strategy guarantees.
    """

    def __init__(self, percent: float = 0.3):
        super().__init__()
        if not 0.0 < percent <= 1.0:
            raise ConfigurationError(f"percent must be in (0, 1], got {percent}")
        self.name = "truncation"
        self.percent = percent

    def perform_selection(self, rnd, species) -> int:
        count = len(species.members)
        if count == 0:
            raise ValueError(f"cannot select from empty species {species.species_id}")
        top = max(int(count * self.percent), 1)
        return int(rnd.integers(top))

    def perform_anti_selection(self, rnd, species) -> int:
        count = len(species.members)
        if count == 0:
            raise ValueError(f"cannot select from empty species {species.species_id}")
        top = max(int(count * self.percent), 1)
        return count - 1 - int(rnd.integers(top))
