"""
Genetic CODECs

A CODEC converts a genome into the phenotype handed to the score function.
``encode`` and ``decode`` are inverses for every genome the engine produces.
"""
from abc import ABC, abstractmethod

import numpy as np

from .genomes import DoubleArrayGenome


class GeneticCODEC(ABC):

    @abstractmethod
    def decode(self, genome):
        pass

    @abstractmethod
    def encode(self, phenotype):
        pass


class GenomeAsPhenomeCODEC(GeneticCODEC):
    """The genome is its own phenotype."""

    def decode(self, genome):
        return genome

    def encode(self, phenotype):
        return phenotype


class ArrayCODEC(GeneticCODEC):
    """Decodes array genomes into a copy of their numpy vector."""

    def __init__(self, genome_class=DoubleArrayGenome):
        self.genome_class = genome_class

    def decode(self, genome) -> np.ndarray:
        return np.array(genome.data, copy=True)

    def encode(self, phenotype):
        return self.genome_class(data=np.asarray(phenotype))
