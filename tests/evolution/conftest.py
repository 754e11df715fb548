"""
Shared fixtures for the evolution test-suite
"""

import sys
from pathlib import Path
from types import SimpleNamespace

import numpy as np
import pytest

project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from evotrain.evolution.components.comparator import best_comparator, selection_comparator
from evotrain.evolution.components.genome import Genome
from evotrain.evolution.components.population import Species


class ValueGenome(Genome):
    """Genome whose payload is a single number."""

    def __init__(self, value=0.0, length=1):
        super().__init__()
        self.value = value
        self.length = length

    def size(self):
        return self.length


def scored_genome(score, adjusted=None, length=1):
    genome = ValueGenome(score, length)
    genome.score = float(score)
    genome.adjusted_score = float(score if adjusted is None else adjusted)
    return genome


@pytest.fixture
def rnd():
    return np.random.default_rng(42)


@pytest.fixture
def make_genome():
    return scored_genome


@pytest.fixture
def make_species():
    def _make(scores, species_id=0):
        species = Species(species_id)
        for score in scores:
            species.add(scored_genome(score))
        return species
    return _make


@pytest.fixture
def stub_engine():
    """Minimal engine exposing the comparators strategies read."""
    def _make(minimize=False, population=None):
        return SimpleNamespace(best_comparator=best_comparator(minimize),
                               selection_comparator=selection_comparator(minimize),
                               population=population)
    return _make
