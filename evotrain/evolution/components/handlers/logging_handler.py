"""
日誌處理器 - 記錄每個世代的統計資訊
"""
import logging

from .base import EventHandler

logger = logging.getLogger(__name__)


class LoggingHandler(EventHandler):
    """Logs the latest logbook record every ``interval`` generations."""

    def __init__(self, interval: int = 1, level: int = logging.INFO):
        super().__init__()
        if interval < 1:
            raise ValueError(f"interval must be >= 1, got {interval}")
        self.name = "logging_handler"
        self.interval = interval
        self.level = level

    def on_training_start(self, engine, **kwargs):
        stats = engine.population.get_statistics()
        logger.log(self.level, f"訓練開始: population={stats['size']}, species={stats['species']}, "
                               f"operators={len(engine.operators)}")

    def on_generation_complete(self, iteration, engine, **kwargs):
        if iteration % self.interval != 0 or not engine.history:
            return
        record = engine.history[-1]
        logger.log(self.level,
                   f"第 {iteration} 世代: best={record['best']:.6f} avg={record['avg']:.6f} "
                   f"std={record['std']:.6f} species={record['species']} size={record['size']}")

    def on_training_complete(self, engine, result=None, **kwargs):
        if engine.best_genome is not None:
            logger.log(self.level, f"訓練完成: iterations={engine.current_iteration}, best={engine.best_genome.score:.6f}")

    def on_training_error(self, engine, error=None, **kwargs):
        logger.error(f"訓練於第 {engine.current_iteration} 世代失敗: {error}")
