"""
基因組類

Genome base class with ID, scores, species back reference and genealogy tracking.
"""

import copy
import math
import uuid
from abc import ABC, abstractmethod
from typing import List, Optional, Any, Dict


class Genome(ABC):
    """
    Genome base class

    A single candidate solution. The payload is defined by subclasses; the
    engine only relies on the scores, the species back reference and ``size()``.
    ``species_id`` is a plain identifier, the owning ``Species`` holds the
    genome, never the other way around.
    """

    def __init__(self):
        self.id: str = str(uuid.uuid4())

        self.score: float = math.nan
        self.adjusted_score: float = math.nan

        # back reference, resolved through Population.get_species()
        self.species_id: Optional[int] = None

        self.parents: List[str] = []
        self.operation: str = 'unknown'
        self.birth_generation: int = 0

        self.metadata: Dict[str, Any] = {}

    @abstractmethod
    def size(self) -> int:
        """Size of the genome, compared against ``max_individual_size``."""
        pass

    @property
    def is_scored(self) -> bool:
        return not math.isnan(self.score)

    def set_parents(self, parents: List['Genome'], operation: str):
        """
        Record the genealogy of this genome

        Args:
            parents: parent genomes
            operation: name of the operation that produced this genome
        """
        self.parents = [parent.id for parent in parents]
        self.operation = operation

    def clone(self) -> 'Genome':
        """Deep copy with a fresh ID and cleared scores."""
        cloned = copy.deepcopy(self)
        cloned.id = str(uuid.uuid4())
        cloned.score = math.nan
        cloned.adjusted_score = math.nan
        cloned.parents = [self.id]
        cloned.operation = 'reproduction'
        cloned.metadata = self.metadata.copy()
        return cloned

    def get_genealogy_info(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'parents': self.parents,
            'operation': self.operation,
            'birth_generation': self.birth_generation,
            'species_id': self.species_id,
            'score': self.score,
            'adjusted_score': self.adjusted_score,
            'size': self.size(),
        }

    def __repr__(self) -> str:
        score_str = f"{self.score:.4f}" if self.is_scored else "N/A"
        return (f"{self.__class__.__name__}({self.id[:8]}..., gen={self.birth_generation}, "
                f"score={score_str}, species={self.species_id}, op={self.operation})")
