"""
演化結果類

封裝訓練結果：最佳基因組、每世代統計歷史與執行資訊。
"""

from typing import Dict, List, Any, Optional
from dataclasses import dataclass

import pandas as pd


@dataclass
class EvolutionResult:
    """
    Result of ``EvolutionEngine.evolve``

    ``history`` holds one logbook record per generation (keys ``iteration``,
    ``species``, ``size``, ``best``, ``avg``, ``std``, ``min``, ``max``).
    """

    engine_id: str
    config: Dict[str, Any]

    best_genome: Any
    final_population: List[Any]

    history: List[Dict[str, Any]]
    iterations_completed: int
    total_evaluations: int

    minimize: bool = False
    species_count: int = 0
    execution_time: Optional[float] = None
    stopped_early: bool = False

    @property
    def best_score(self) -> float:
        if self.best_genome is None:
            return float('nan')
        return self.best_genome.score

    @property
    def convergence_iteration(self) -> Optional[int]:
        """First iteration whose best score equals the final best score."""
        for record in self.history:
            if abs(record.get('best', float('nan')) - self.best_score) < 1e-10:
                return record.get('iteration')
        return None

    @property
    def improvement_rate(self) -> float:
        """Relative improvement of the best score over the first record, positive when better."""
        if len(self.history) < 2:
            return 0.0

        initial = self.history[0].get('best', 0.0)
        final = self.best_score
        change = initial - final if self.minimize else final - initial

        if initial == 0:
            return float('inf') if change > 0 else 0.0
        return change / abs(initial)

    def to_dataframe(self) -> pd.DataFrame:
        """History as a DataFrame indexed by iteration."""
        frame = pd.DataFrame(self.history)
        if 'iteration' in frame.columns:
            frame = frame.set_index('iteration')
        return frame

    def get_summary(self) -> Dict[str, Any]:
        return {
            'engine_id': self.engine_id,
            'iterations_completed': self.iterations_completed,
            'total_evaluations': self.total_evaluations,
            'population_size': len(self.final_population),
            'species_count': self.species_count,
            'best_score': self.best_score,
            'execution_time': self.execution_time,
            'improvement_rate': self.improvement_rate,
            'convergence_iteration': self.convergence_iteration,
            'stopped_early': self.stopped_early,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'engine_id': self.engine_id,
            'config': self.config,
            'best_genome': self.best_genome.get_genealogy_info() if self.best_genome is not None else None,
            'history': self.history,
            'summary': self.get_summary(),
        }
