"""
早停處理器 - 連續多個世代無進步時停止演化
"""
import logging

from .base import EventHandler
from ...early_stopping import EarlyStopping

logger = logging.getLogger(__name__)


class EarlyStoppingHandler(EventHandler):
    """Calls ``engine.stop()`` once the best score stalls for ``patience`` generations."""

    def __init__(self, patience: int = 10, min_delta: float = 0.0):
        super().__init__()
        if patience < 1:
            raise ValueError(f"patience must be >= 1, got {patience}")
        self.name = "early_stopping_handler"
        self.patience = patience
        self.min_delta = min_delta
        self.early_stopping = None

    def on_training_start(self, engine, **kwargs):
        mode = 'min' if engine.best_comparator.should_minimize() else 'max'
        self.early_stopping = EarlyStopping(patience=self.patience, min_delta=self.min_delta, mode=mode)

    def on_generation_complete(self, iteration, engine, **kwargs):
        if self.early_stopping is None or engine.best_genome is None:
            return
        if self.early_stopping.step(engine.best_genome.score):
            logger.info(f"早停觸發於第 {iteration} 世代 "
                        f"(best={self.early_stopping.best_fitness}, patience={self.patience})")
            engine.stop()
