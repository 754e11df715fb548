"""
族群與物種

Population and species bookkeeping. The population owns its species, each
species owns its member genomes, and genomes point back to their species
through ``species_id`` only.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any, Iterator, Tuple

from .errors import ConfigurationError, TrainingFailure
from .genome import Genome

logger = logging.getLogger(__name__)


class Species:
    """
    A group of similar genomes competing with each other for selection.

    Attributes:
        species_id: identifier used by member back references
        members: member genomes in a stable order
        best_score: best raw score ever seen among the members
        gens_no_improvement: consecutive generations without a better ``best_score``
        age: generations this species has existed
        leader: representative genome used by speciation
        offspring_count: offspring this species spawns next generation
        offspring_share: fractional share behind ``offspring_count``
    """

    def __init__(self, species_id: int):
        self.species_id = species_id
        self.members: List[Genome] = []
        self.best_score: float = math.nan
        self.gens_no_improvement: int = 0
        self.age: int = 0
        self.leader: Optional[Genome] = None
        self.offspring_count: int = 0
        self.offspring_share: float = 0.0

    def add(self, genome: Genome):
        genome.species_id = self.species_id
        self.members.append(genome)

    def remove(self, genome: Genome):
        self.members.remove(genome)
        if genome.species_id == self.species_id:
            genome.species_id = None
        if self.leader is genome:
            self.leader = None

    def clear(self):
        """Drop all members, keeping statistics and the leader."""
        self.members = []

    def sort(self, comparator):
        """Sort members best first."""
        self.members.sort(key=comparator.sort_key)

    def best_member(self, comparator) -> Optional[Genome]:
        best = None
        for genome in self.members:
            if best is None or comparator.is_better_than(genome, best):
                best = genome
        return best

    def update_best(self, comparator) -> bool:
        """
        Update ``best_score`` from the current members

        Args:
            comparator: comparator on the raw score

        Returns:
            True if the best score improved, otherwise the stagnation counter grows
        """
        best = self.best_member(comparator)
        if best is not None and comparator.is_better_value(best.score, self.best_score):
            self.best_score = best.score
            self.gens_no_improvement = 0
            return True
        self.gens_no_improvement += 1
        return False

    def calculate_share(self, minimize: bool, max_score: float) -> float:
        """
        Average adjusted score of the members, oriented so that larger is better.

        Args:
            minimize: whether the score function minimizes
            max_score: largest adjusted score in the population, used to flip minimized scores
        """
        if not self.members:
            return 0.0
        total = 0.0
        for genome in self.members:
            value = genome.adjusted_score
            if not math.isfinite(value):
                continue
            total += (max_score - value) if minimize else value
        return total / len(self.members)

    def __len__(self) -> int:
        return len(self.members)

    def __iter__(self) -> Iterator[Genome]:
        return iter(self.members)

    def __repr__(self) -> str:
        return (f"Species(id={self.species_id}, members={len(self.members)}, best={self.best_score}, "
                f"stagnant={self.gens_no_improvement}, age={self.age})")


@dataclass
class PopulationSnapshot:
    """Committed state of a population, restored when a generation aborts."""
    species: List[Species]
    members: Dict[int, List[Genome]]
    stats: Dict[int, Tuple[float, int, int, Optional[Genome], int, float]]
    back_references: List[Tuple[Genome, Optional[int]]] = field(default_factory=list)
    next_species_id: int = 0


class Population:
    """
    族群

    Owns every species and the population-wide limits. The union of species
    members is the whole candidate pool; no genome belongs to two species.
    """

    def __init__(self, max_population_size: int = 100, max_individual_size: int = 0, max_species: int = 0):
        """
        Args:
            max_population_size: upper bound on the total member count after a generation
            max_individual_size: largest allowed ``Genome.size()``, 0 disables the check
            max_species: target species count for speciation, 0 means unbounded
        """
        if max_population_size < 1:
            raise ConfigurationError(f"max_population_size must be >= 1, got {max_population_size}")
        if max_individual_size < 0:
            raise ConfigurationError(f"max_individual_size must be >= 0, got {max_individual_size}")
        if max_species < 0:
            raise ConfigurationError(f"max_species must be >= 0, got {max_species}")

        self.max_population_size = max_population_size
        self.max_individual_size = max_individual_size
        self.max_species = max_species

        self.species: List[Species] = []
        self._next_species_id = 0

    def create_species(self) -> Species:
        species = Species(self._next_species_id)
        self._next_species_id += 1
        self.species.append(species)
        return species

    def remove_species(self, species: Species):
        self.species.remove(species)
        for genome in species.members:
            if genome.species_id == species.species_id:
                genome.species_id = None

    def get_species(self, species_id: Optional[int]) -> Optional[Species]:
        if species_id is None:
            return None
        for species in self.species:
            if species.species_id == species_id:
                return species
        return None

    def species_for(self, genome: Genome) -> Optional[Species]:
        return self.get_species(genome.species_id)

    def flatten(self) -> List[Genome]:
        """All genomes, in species iteration order."""
        return [genome for species in self.species for genome in species.members]

    def size(self) -> int:
        return sum(len(species) for species in self.species)

    def seed(self, factory, rnd, count: Optional[int] = None) -> Species:
        """
        Bootstrap the population with a single species of random genomes

        Args:
            factory: object with ``factor(rnd)`` returning a new genome
            rnd: numpy random generator
            count: number of genomes, defaults to ``max_population_size``

        Returns:
            the created species
        """
        count = self.max_population_size if count is None else count
        if count < 1 or count > self.max_population_size:
            raise ConfigurationError(
                f"seed count must be in [1, {self.max_population_size}], got {count}")

        species = self.create_species()
        for _ in range(count):
            genome = factory.factor(rnd)
            genome.operation = 'initialization'
            species.add(genome)
        logger.info(f"族群初始化完成: {count} genomes in species {species.species_id}")
        return species

    def replace_members(self, genomes: List[Genome]):
        """
        Insert a new generation

        Each genome joins the species named by its back reference; genomes
        without a live species join the first species. Species left empty
        are removed.
        """
        by_id = {species.species_id: species for species in self.species}
        for species in self.species:
            species.clear()

        fallback = self.species[0] if self.species else self.create_species()
        by_id.setdefault(fallback.species_id, fallback)

        for genome in genomes:
            target = by_id.get(genome.species_id, fallback)
            target.add(genome)

        self.species = [species for species in self.species if species.members]

    def purge_invalid_genomes(self) -> int:
        """Remove genomes whose score is NaN or infinite. Returns the number removed."""
        removed = 0
        for species in self.species:
            valid = [genome for genome in species.members if math.isfinite(genome.score)]
            removed += len(species.members) - len(valid)
            species.members = valid
            if species.leader is not None and species.leader not in valid:
                species.leader = valid[0] if valid else None
        self.species = [species for species in self.species if species.members]
        if removed:
            logger.debug(f"清除了 {removed} 個無效基因組")
        return removed

    def check_invariants(self):
        """
        Verify the size bound, the species partition and back references.

        Raises:
            TrainingFailure: if any invariant is violated
        """
        total = self.size()
        if total > self.max_population_size:
            raise TrainingFailure(
                f"population size {total} exceeds max_population_size {self.max_population_size}")

        seen = set()
        for species in self.species:
            for genome in species.members:
                if id(genome) in seen:
                    raise TrainingFailure(f"genome {genome.id} belongs to more than one species")
                seen.add(id(genome))
                if genome.species_id != species.species_id:
                    raise TrainingFailure(
                        f"genome {genome.id} points to species {genome.species_id}, "
                        f"but is a member of species {species.species_id}")

    def snapshot(self) -> PopulationSnapshot:
        members = {species.species_id: list(species.members) for species in self.species}
        stats = {
            species.species_id: (species.best_score, species.gens_no_improvement, species.age,
                                 species.leader, species.offspring_count, species.offspring_share)
            for species in self.species
        }
        back_references = [(genome, genome.species_id) for genome in self.flatten()]
        return PopulationSnapshot(list(self.species), members, stats, back_references, self._next_species_id)

    def restore(self, snapshot: PopulationSnapshot):
        self.species = list(snapshot.species)
        for species in self.species:
            species.members = list(snapshot.members[species.species_id])
            (species.best_score, species.gens_no_improvement, species.age,
             species.leader, species.offspring_count, species.offspring_share) = snapshot.stats[species.species_id]
        for genome, species_id in snapshot.back_references:
            genome.species_id = species_id
        self._next_species_id = snapshot.next_species_id

    def get_statistics(self) -> Dict[str, Any]:
        return {
            'size': self.size(),
            'species': len(self.species),
            'max_population_size': self.max_population_size,
            'max_individual_size': self.max_individual_size,
            'max_species': self.max_species,
        }

    def __repr__(self) -> str:
        return f"Population(size={self.size()}, species={len(self.species)}, max={self.max_population_size})"
