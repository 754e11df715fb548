"""
Array Genome Operators

Mutation and crossover operators for ``ArrayGenome`` subclasses. Each
operator clones its parents and never modifies them.
"""
import numpy as np

from ..errors import OffspringInvalid, ConfigurationError
from ..strategies.operation import EvolutionaryOperator


class MutatePerturb(EvolutionaryOperator):
    """
    Adds uniform noise in ``[-perturb_amount, perturb_amount]`` to every gene

    Only real valued genomes can be perturbed; integer genomes are rejected
    with ``OffspringInvalid``.
    """

    parents_needed = 1

    def __init__(self, perturb_amount: float = 0.1):
        super().__init__()
        if perturb_amount <= 0:
            raise ConfigurationError(f"perturb_amount must be > 0, got {perturb_amount}")
        self.perturb_amount = perturb_amount

    def apply(self, rnd, parents):
        if not np.issubdtype(parents[0].data.dtype, np.floating):
            raise OffspringInvalid(f"cannot perturb a genome of dtype {parents[0].data.dtype}")
        child = parents[0].clone()
        noise = self.perturb_amount - rnd.random(child.size()) * self.perturb_amount * 2
        child.data = child.data + noise
        child.set_parents(parents[:1], 'mutate_perturb')
        return [child]


class MutateShuffle(EvolutionaryOperator):
    """Swaps two distinct genes. Keeps permutations valid."""

    parents_needed = 1

    def apply(self, rnd, parents):
        parent = parents[0]
        length = parent.size()
        if length < 2:
            raise OffspringInvalid(f"cannot shuffle a genome of size {length}")
        i = int(rnd.integers(length))
        j = int(rnd.integers(length - 1))
        if j >= i:
            j += 1
        child = parent.clone()
        child.swap(i, j)
        child.set_parents([parent], 'mutate_shuffle')
        return [child]


class Splice(EvolutionaryOperator):
    """
    Two point crossover with a fixed cut length

    The segment ``[cut, cut + cut_length)`` is exchanged between the two
    parents, giving two children.
    """

    parents_needed = 2

    def __init__(self, cut_length: int = 1):
        super().__init__()
        if cut_length < 1:
            raise ConfigurationError(f"cut_length must be >= 1, got {cut_length}")
        self.cut_length = cut_length

    def _cut_points(self, rnd, father, mother):
        length = father.size()
        if mother.size() != length:
            raise OffspringInvalid(f"parents differ in length: {length} vs {mother.size()}")
        if length <= self.cut_length:
            raise OffspringInvalid(f"cut_length {self.cut_length} does not fit genome size {length}")
        start = int(rnd.integers(length - self.cut_length))
        return start, start + self.cut_length

    def apply(self, rnd, parents):
        father, mother = parents[0], parents[1]
        start, end = self._cut_points(rnd, father, mother)

        child1 = father.clone()
        child2 = mother.clone()
        child1.data[start:end] = mother.data[start:end]
        child2.data[start:end] = father.data[start:end]

        for child in (child1, child2):
            child.set_parents([father, mother], 'splice')
        return [child1, child2]


class SpliceNoRepeat(Splice):
    """
    Splice for permutations

    Each child keeps one parent's segment and fills the remaining positions
    with the other parent's genes in order, skipping genes already taken.
    """

    @staticmethod
    def _fill(segment_parent, order_parent, start, end):
        data = np.empty_like(segment_parent.data)
        data[start:end] = segment_parent.data[start:end]
        taken = set(data[start:end].tolist())
        rest = [gene for gene in order_parent.data.tolist() if gene not in taken]
        positions = [i for i in range(len(data)) if not start <= i < end]
        if len(rest) != len(positions):
            raise OffspringInvalid("parents are not permutations of the same genes")
        data[positions] = rest
        return data

    def apply(self, rnd, parents):
        father, mother = parents[0], parents[1]
        start, end = self._cut_points(rnd, father, mother)

        child1 = father.clone()
        child2 = mother.clone()
        child1.data = self._fill(father, mother, start, end)
        child2.data = self._fill(mother, father, start, end)

        for child in (child1, child2):
            child.set_parents([father, mother], 'splice_no_repeat')
        return [child1, child2]
