"""
Array Genomes

Fixed-length genomes backed by numpy arrays, with factories used to seed an
initial population. These cover continuous parameter tuning
(``DoubleArrayGenome``) and discrete or permutation problems
(``IntegerArrayGenome``).
"""
from typing import Optional

import numpy as np

from ..genome import Genome


class ArrayGenome(Genome):
    """Genome whose payload is a one-dimensional numpy array."""

    dtype = float

    def __init__(self, size: int = 0, data: Optional[np.ndarray] = None):
        super().__init__()
        if data is not None:
            self.data = np.array(data, dtype=self.dtype)
        else:
            self.data = np.zeros(size, dtype=self.dtype)

    def size(self) -> int:
        return len(self.data)

    def swap(self, i: int, j: int):
        self.data[i], self.data[j] = self.data[j], self.data[i]


class DoubleArrayGenome(ArrayGenome):
    dtype = float


class IntegerArrayGenome(ArrayGenome):
    dtype = int


class DoubleArrayGenomeFactory:
    """Uniform random real genomes in ``[low, high)``."""

    def __init__(self, size: int, low: float = -1.0, high: float = 1.0):
        self.size = size
        self.low = low
        self.high = high

    def factor(self, rnd) -> DoubleArrayGenome:
        return DoubleArrayGenome(data=rnd.uniform(self.low, self.high, self.size))


class IntegerArrayGenomeFactory:
    """Uniform random integer genomes in ``[low, high]``."""

    def __init__(self, size: int, low: int = 0, high: int = 1):
        self.size = size
        self.low = low
        self.high = high

    def factor(self, rnd) -> IntegerArrayGenome:
        return IntegerArrayGenome(data=rnd.integers(self.low, self.high + 1, self.size))


class PermutationGenomeFactory:
    """Random permutations of ``0..size-1``, e.g. for ordering problems."""

    def __init__(self, size: int):
        self.size = size

    def factor(self, rnd) -> IntegerArrayGenome:
        return IntegerArrayGenome(data=rnd.permutation(self.size))
