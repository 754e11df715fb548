"""
操作策略模組

Evolutionary operators and the weighted list the engine draws them from.
"""

import bisect
import enum
import logging
from dataclasses import dataclass, field
from itertools import accumulate
from typing import List, Optional, Tuple

from ..errors import ConfigurationError, OffspringInvalid

logger = logging.getLogger(__name__)


class EvolutionaryOperator:
    """
    Operator base class

    Subclasses consume ``parents_needed`` parents and return new genomes.
    Parents must not be modified. Raise ``OffspringInvalid`` when the
    offspring cannot be built; the engine retries.
    """

    parents_needed: int = 1

    def __init__(self):
        self.engine = None
        self.name = self.__class__.__name__

    def set_engine(self, engine):
        self.engine = engine

    def apply(self, rnd, parents: List) -> List:
        """
        Produce offspring

        Args:
            rnd: numpy random generator
            parents: ``parents_needed`` parent genomes

        Returns:
            list of new genomes
        """
        raise NotImplementedError("子類必須實現 apply 方法")


class OperationStatus(enum.Enum):
    SUCCESS = 'success'
    INVALID = 'invalid'
    FATAL = 'fatal'


@dataclass
class OperationResult:
    """Outcome of one attempt at applying an operator."""
    status: OperationStatus
    offspring: List = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.status is OperationStatus.SUCCESS

    @classmethod
    def attempt(cls, operator: EvolutionaryOperator, rnd, parents: List) -> 'OperationResult':
        """Run ``operator`` once and classify the outcome."""
        try:
            offspring = operator.apply(rnd, parents)
        except OffspringInvalid as e:
            return cls(OperationStatus.INVALID, error=e)
        except Exception as e:
            return cls(OperationStatus.FATAL, error=e)
        if not offspring:
            return cls(OperationStatus.INVALID, error=OffspringInvalid(f"{operator.name} produced no offspring"))
        return cls(OperationStatus.SUCCESS, offspring=list(offspring))


class OperationList:
    """
    Weighted operator list

    Weights are relative and need not sum to 1. A cumulative table is
    rebuilt on every registration; a pick is one uniform draw plus a binary
    search.
    """

    def __init__(self):
        self._entries: List[Tuple[float, EvolutionaryOperator]] = []
        self._cumulative: List[float] = []

    def add(self, probability: float, operator: EvolutionaryOperator):
        if not probability > 0:
            raise ConfigurationError(f"operator probability must be > 0, got {probability}")
        self._entries.append((float(probability), operator))
        self._cumulative = list(accumulate(weight for weight, _ in self._entries))
        logger.debug(f"已添加操作 {operator.name} (weight={probability})")

    def clear(self):
        self._entries = []
        self._cumulative = []

    @property
    def total_weight(self) -> float:
        return self._cumulative[-1] if self._cumulative else 0.0

    def normalized(self) -> List[Tuple[float, EvolutionaryOperator]]:
        """Entries with weights scaled to sum to 1."""
        total = self.total_weight
        return [(weight / total, operator) for weight, operator in self._entries]

    def pick(self, rnd) -> EvolutionaryOperator:
        if not self._entries:
            raise ConfigurationError("no evolutionary operators registered")
        draw = rnd.random() * self.total_weight
        index = bisect.bisect_right(self._cumulative, draw)
        return self._entries[min(index, len(self._entries) - 1)][1]

    def pick_max_parents(self, rnd, max_parents: int) -> Optional[EvolutionaryOperator]:
        """
        Pick among operators needing at most ``max_parents`` parents

        Uses the precomputed table when every operator qualifies. Returns
        None when no registered operator can be fed from ``max_parents``.
        """
        if not self._entries:
            raise ConfigurationError("no evolutionary operators registered")
        if all(operator.parents_needed <= max_parents for _, operator in self._entries):
            return self.pick(rnd)

        eligible = [(weight, operator) for weight, operator in self._entries
                    if operator.parents_needed <= max_parents]
        if not eligible:
            return None
        cumulative = list(accumulate(weight for weight, _ in eligible))
        draw = rnd.random() * cumulative[-1]
        index = bisect.bisect_right(cumulative, draw)
        return eligible[min(index, len(eligible) - 1)][1]

    def max_parents(self) -> int:
        return max((operator.parents_needed for _, operator in self._entries), default=0)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)
