"""
陣列基因組與遺傳操作

Numpy-backed genomes, their operators and CODECs.
"""

from .genomes import (ArrayGenome, DoubleArrayGenome, IntegerArrayGenome,
                      DoubleArrayGenomeFactory, IntegerArrayGenomeFactory, PermutationGenomeFactory)
from .operators import MutatePerturb, MutateShuffle, Splice, SpliceNoRepeat
from .codec import GeneticCODEC, GenomeAsPhenomeCODEC, ArrayCODEC

__all__ = [
    'ArrayGenome', 'DoubleArrayGenome', 'IntegerArrayGenome',
    'DoubleArrayGenomeFactory', 'IntegerArrayGenomeFactory', 'PermutationGenomeFactory',
    'MutatePerturb', 'MutateShuffle', 'Splice', 'SpliceNoRepeat',
    'GeneticCODEC', 'GenomeAsPhenomeCODEC', 'ArrayCODEC',
]
