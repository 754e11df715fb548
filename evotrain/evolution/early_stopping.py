"""
Early Stopping for evolutionary training

提供早停機制，當連續 N 代最佳分數無進步時終止訓練。
"""

from typing import Optional, Dict, Any

MODES = ('max', 'min')


class EarlyStopping:
    """
    早停機制類

    Tracks the best score seen so far and counts generations whose best
    score fails to beat it by more than ``min_delta``.

    Example:
        >>> early_stopping = EarlyStopping(patience=10, min_delta=0.001, mode='min')
        >>> while not early_stopping.step(engine.best_genome.score):
        ...     engine.iteration()
    """

    def __init__(self, patience: int = 10, min_delta: float = 0.0, mode: str = 'max'):
        """
        Args:
            patience: generations without improvement before stopping
            min_delta: smallest change that counts as an improvement
            mode: 'max' when higher scores are better, 'min' otherwise

        Raises:
            ValueError: if patience < 1 or mode is not 'max'/'min'
        """
        if patience < 1:
            raise ValueError(f"patience must be >= 1, got {patience}")
        if mode not in MODES:
            raise ValueError(f"mode must be 'max' or 'min', got {mode}")

        self.patience = patience
        self.min_delta = min_delta
        self.mode = mode
        self.reset()

    def reset(self):
        """重置早停狀態"""
        self.counter = 0
        self.best_fitness: Optional[float] = None
        self.best_generation = 0
        self.should_stop = False
        self.generation = 0

    def _improvement(self, current: float) -> float:
        if self.mode == 'max':
            return current - self.best_fitness
        return self.best_fitness - current

    def step(self, current_fitness: float) -> bool:
        """
        Record one generation's best score

        Returns:
            True once ``patience`` consecutive generations brought no improvement
        """
        self.generation += 1

        if self.best_fitness is None or self._improvement(current_fitness) > self.min_delta:
            self.best_fitness = current_fitness
            self.best_generation = self.generation
            self.counter = 0
        else:
            self.counter += 1

        self.should_stop = self.counter >= self.patience
        return self.should_stop

    def get_status(self) -> Dict[str, Any]:
        return {
            'counter': self.counter,
            'best_fitness': self.best_fitness,
            'best_generation': self.best_generation,
            'should_stop': self.should_stop,
            'generation': self.generation,
            'patience': self.patience,
            'min_delta': self.min_delta,
            'mode': self.mode
        }

    def __repr__(self) -> str:
        return (f"EarlyStopping(patience={self.patience}, min_delta={self.min_delta}, "
                f"mode='{self.mode}', counter={self.counter}, generation={self.generation})")
