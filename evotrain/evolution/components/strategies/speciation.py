"""
物種劃分策略

Speciation regroups the whole population after every generation. Every
implementation must keep the population within ``max_population_size``
and leave each genome in exactly one species. Setting ``offspring_count`` on
each species is optional; slots left unassigned are shared out by member
count when the next generation is bred.
"""

import logging
import math
from typing import List

import numpy as np

from .base import EvolutionStrategy
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


class Speciation(EvolutionStrategy):
    """
    物種劃分基類
    """

    def __init__(self):
        super().__init__()
        self.name = "speciation"

    def init(self, engine):
        """Called once before the first generation."""
        self.set_engine(engine)

    def speciate(self, population):
        """
        Regroup every genome of ``population`` into species

        Args:
            population: population whose species hold the newly inserted generation
        """
        raise NotImplementedError("子類必須實現 speciate 方法")

    def _best_comparator(self):
        if self.engine is None:
            raise ConfigurationError(f"{self.__class__.__name__} is not attached to an engine")
        return self.engine.best_comparator

    def _finish_species(self, species):
        """Sort best first and make the top member the leader."""
        species.sort(self._selection_comparator())
        species.leader = species.members[0] if species.members else None


class SingleSpeciation(Speciation):
    """
    單一物種

    Keeps every genome in one species. Useful for plain genetic algorithms
    and as the minimal implementation of the speciation contract.
    """

    def __init__(self):
        super().__init__()
        self.name = "single"

    def speciate(self, population):
        genomes = population.flatten()

        if population.species:
            species = population.species[0]
            population.species = [species]
        else:
            species = population.create_species()

        species.clear()
        for genome in genomes:
            species.add(genome)

        self._finish_species(species)
        species.age += 1
        species.update_best(self._best_comparator())
        species.offspring_share = 1.0
        species.offspring_count = population.max_population_size


class ThresholdSpeciation(Speciation):
    """
    閾值物種劃分

    Leader based clustering. A genome joins the closest species whose leader
    lies within ``compatibility_threshold``; otherwise it founds a new
    species. The threshold drifts by ``threshold_increment`` to keep the
    species count near ``population.max_species``. Species that have not
    improved for ``max_gens_no_improvement`` generations are dropped unless
    they hold the best genome.
    """

    def __init__(self, compatibility_threshold: float = 1.0, max_gens_no_improvement: int = 15,
                 threshold_increment: float = 0.01):
        super().__init__()
        if compatibility_threshold <= 0:
            raise ConfigurationError(f"compatibility_threshold must be > 0, got {compatibility_threshold}")
        if max_gens_no_improvement < 1:
            raise ConfigurationError(f"max_gens_no_improvement must be >= 1, got {max_gens_no_improvement}")
        self.name = "threshold"
        self.compatibility_threshold = compatibility_threshold
        self.max_gens_no_improvement = max_gens_no_improvement
        self.threshold_increment = threshold_increment

    def get_compatibility_score(self, genome1, genome2) -> float:
        """Distance between two genomes; smaller means more similar."""
        raise NotImplementedError("子類必須實現 get_compatibility_score 方法")

    def speciate(self, population):
        genomes = population.flatten()
        if not genomes:
            return

        best_cmp = self._best_comparator()
        best_genome = None
        for genome in genomes:
            if best_genome is None or best_cmp.is_better_than(genome, best_genome):
                best_genome = genome

        genomes = self._remove_stagnant(population, genomes, best_genome)
        self._regroup(population, genomes)
        self._adjust_threshold(population)
        self._calculate_offspring(population)

        logger.debug(f"   物種劃分: {len(population.species)} species, "
                     f"threshold={self.compatibility_threshold:.4f}")

    def _remove_stagnant(self, population, genomes: List, best_genome) -> List:
        best_cmp = self._best_comparator()
        for species in list(population.species):
            species.age += 1
            species.update_best(best_cmp)

        for species in list(population.species):
            if len(population.species) <= 1:
                break
            if species.gens_no_improvement <= self.max_gens_no_improvement:
                continue
            if any(member is best_genome for member in species.members):
                continue
            logger.info(f"移除停滯物種 {species.species_id} "
                        f"({species.gens_no_improvement} generations without improvement)")
            doomed = set(id(member) for member in species.members)
            population.remove_species(species)
            genomes = [genome for genome in genomes if id(genome) not in doomed]
        return genomes

    def _regroup(self, population, genomes: List):
        selection_cmp = self._selection_comparator()
        for species in list(population.species):
            if species.leader is None:
                species.leader = species.best_member(selection_cmp)
            species.clear()
            if species.leader is None:
                population.species.remove(species)

        new_species = []
        for genome in genomes:
            target = None
            closest = None
            closest_distance = math.inf
            for species in population.species:
                distance = self.get_compatibility_score(genome, species.leader)
                if distance < closest_distance:
                    closest, closest_distance = species, distance
            if closest is not None and closest_distance < self.compatibility_threshold:
                target = closest
            elif closest is not None and population.max_species and len(population.species) >= population.max_species:
                target = closest
            else:
                target = population.create_species()
                target.leader = genome
                new_species.append(target)
            target.add(genome)

        population.species = [species for species in population.species if species.members]
        for species in population.species:
            self._finish_species(species)
        for species in new_species:
            if species.members:
                species.best_score = species.best_member(self._best_comparator()).score
                species.gens_no_improvement = 0

    def _adjust_threshold(self, population):
        if not population.max_species:
            return
        count = len(population.species)
        if count > population.max_species:
            self.compatibility_threshold += self.threshold_increment
        elif count < 2:
            self.compatibility_threshold = max(self.compatibility_threshold - self.threshold_increment,
                                               self.threshold_increment)

    def _calculate_offspring(self, population):
        """Split ``max_population_size`` offspring slots by species share."""
        minimize = self._selection_comparator().should_minimize()
        scores = [genome.adjusted_score for genome in population.flatten() if math.isfinite(genome.adjusted_score)]
        max_score = max(scores) if scores else 0.0
        shift = -min(scores) if scores and not minimize and min(scores) < 0 else 0.0

        shares = [species.calculate_share(minimize, max_score) + shift for species in population.species]
        total = sum(shares)
        target = population.max_population_size
        if total <= 0:
            shares = [1.0] * len(population.species)
            total = float(len(shares))

        exact = [share / total * target for share in shares]
        counts = [int(math.floor(value)) for value in exact]
        remainder = target - sum(counts)
        order = sorted(range(len(exact)), key=lambda i: counts[i] - exact[i])
        for i in order[:remainder]:
            counts[i] += 1

        for species, share, count in zip(population.species, exact, counts):
            species.offspring_share = share / target
            species.offspring_count = count


class ArrayThresholdSpeciation(ThresholdSpeciation):
    """Threshold speciation on the euclidean distance between array genomes."""

    def get_compatibility_score(self, genome1, genome2) -> float:
        a = np.asarray(genome1.data, dtype=float)
        b = np.asarray(genome2.data, dtype=float)
        if a.shape != b.shape:
            return math.inf
        return float(np.linalg.norm(a - b))
