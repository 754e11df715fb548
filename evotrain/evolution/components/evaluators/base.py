"""
適應度評估器基類

Score functions turn a decoded phenotype into a raw score. The direction
(``should_minimize``) is fixed for a training run.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable
import logging

logger = logging.getLogger(__name__)


class ScoreFunction(ABC):
    """
    分數函數基類

    Failures raised by ``calculate_score`` are not caught by the engine
    beyond aborting the generation.
    """

    def __init__(self):
        self.name = "base_score_function"

    @abstractmethod
    def calculate_score(self, phenotype: Any) -> float:
        """
        評估單個表現型的分數

        Args:
            phenotype: decoded genome

        Returns:
            raw score
        """
        pass

    @abstractmethod
    def should_minimize(self) -> bool:
        """True when lower scores are better."""
        pass


class CallableScoreFunction(ScoreFunction):
    """Wraps a plain function ``fn(phenotype) -> float``."""

    def __init__(self, fn: Callable[[Any], float], minimize: bool = False):
        super().__init__()
        self.fn = fn
        self.minimize = minimize
        self.name = getattr(fn, '__name__', 'callable')

    def calculate_score(self, phenotype: Any) -> float:
        return float(self.fn(phenotype))

    def should_minimize(self) -> bool:
        return self.minimize
