"""
演化策略基類

Common base for engine plug-ins that need a reference back to the engine.
"""

from abc import ABC
import logging

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


class EvolutionStrategy(ABC):
    """
    演化策略基類

    Selection, speciation and score adjustment strategies read engine state
    (comparators, population limits) through ``self.engine``.
    """

    def __init__(self):
        self.engine = None
        self.name = "base_strategy"

    def set_engine(self, engine):
        """設置演化引擎引用"""
        self.engine = engine

    def _selection_comparator(self):
        if self.engine is None:
            raise ConfigurationError(f"{self.__class__.__name__} is not attached to an engine")
        return self.engine.selection_comparator
