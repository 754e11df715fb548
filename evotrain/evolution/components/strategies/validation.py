"""
基因組驗證器

Validators run on every new genome while the engine is in validation mode.
A rejected genome costs one attempt of the ``max_tries`` budget.
"""

import logging

import numpy as np

from ..errors import OffspringInvalid

logger = logging.getLogger(__name__)


class GenomeValidator:
    """驗證器基類"""

    def validate(self, genome, engine):
        """
        Raise ``OffspringInvalid`` if the genome must not enter the population.
        """
        raise NotImplementedError("子類必須實現 validate 方法")


class MaxSizeValidator(GenomeValidator):
    """Rejects genomes larger than the population's ``max_individual_size``."""

    def validate(self, genome, engine):
        limit = engine.population.max_individual_size
        if limit and genome.size() > limit:
            raise OffspringInvalid(f"genome size {genome.size()} exceeds max_individual_size {limit}")


class FiniteArrayValidator(GenomeValidator):
    """Rejects array genomes holding NaN or infinite genes."""

    def validate(self, genome, engine):
        data = getattr(genome, 'data', None)
        if data is None:
            return
        if not np.all(np.isfinite(data)):
            raise OffspringInvalid(f"genome {genome.id[:8]} contains non-finite genes")
