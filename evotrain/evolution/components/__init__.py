"""
組件化演化訓練框架

Evolutionary training engine whose strategies (selection, variation
operators, score adjustment, speciation, validation) are pluggable
components created from a configuration dict.
"""

import logging
from typing import List, Optional

from .config import load_config
from .engine import EvolutionEngine, EngineState
from .errors import (EvolutionError, ConfigurationError, OffspringInvalid, TrainingFailure,
                     LifecycleError, InitializationError)
from .genome import Genome
from .population import Population, Species
from .result import EvolutionResult

logger = logging.getLogger(__name__)

# 名稱到類名的映射
COMPONENT_MAPPINGS = {
    'selection': {
        'tournament': 'TournamentSelection',
        'truncation': 'TruncationSelection',
    },
    'speciation': {
        'single': 'SingleSpeciation',
        'threshold': 'ArrayThresholdSpeciation',
        'array_threshold': 'ArrayThresholdSpeciation',
    },
    'operations': {
        'mutate_perturb': 'MutatePerturb',
        'mutate_shuffle': 'MutateShuffle',
        'splice': 'Splice',
        'splice_no_repeat': 'SpliceNoRepeat',
    },
    'score_adjusters': {
        'complexity': 'ComplexityAdjustedScore',
        'stagnation': 'StagnationAdjustedScore',
    },
    'validators': {
        'max_size': 'MaxSizeValidator',
        'finite_array': 'FiniteArrayValidator',
    },
    'handlers': {
        'logging_handler': 'LoggingHandler',
        'early_stopping_handler': 'EarlyStoppingHandler',
    },
}


def _component_module(component_type: str):
    if component_type == 'operations':
        from . import genetic as module
    elif component_type == 'handlers':
        from . import handlers as module
    else:
        from . import strategies as module
    return module


def _create_component(component_type: str, name: str, parameters: Optional[dict] = None):
    """
    根據配置動態創建組件

    Args:
        component_type: 組件類型 ('selection', 'speciation', 'operations', ...)
        name: 組件名稱 (如 'tournament', 'splice')
        parameters: 傳給構造函數的參數

    Returns:
        創建的組件實例

    Raises:
        ConfigurationError: 如果組件不存在或參數無效
    """
    if component_type not in COMPONENT_MAPPINGS:
        raise ConfigurationError(f"不支持的組件類型: {component_type}")

    mapping = COMPONENT_MAPPINGS[component_type]
    if name not in mapping:
        raise ConfigurationError(f"不支持的{component_type}組件: {name}。可用組件: {list(mapping)}")

    component_class = getattr(_component_module(component_type), mapping[name])
    parameters = parameters or {}
    try:
        return component_class(**parameters)
    except ConfigurationError:
        raise
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"創建組件 {component_type}.{name} 失敗: {e}. 參數: {parameters}") from e


def _entries(config: dict, section: str, key: str) -> List[dict]:
    entries = config.get(section, [])
    if not isinstance(entries, list):
        raise ConfigurationError(f"配置部分 {section} 必須是列表")
    for entry in entries:
        if not isinstance(entry, dict) or key not in entry:
            raise ConfigurationError(f"{section} 的每個項目都需要 '{key}': {entry}")
    return entries


def create_population(config: dict) -> Population:
    """Empty population sized by the ``population`` section."""
    section = config.get('population', {})
    try:
        return Population(**section)
    except TypeError as e:
        raise ConfigurationError(f"無效的 population 配置: {e}") from e


def create_evolution_engine(config: dict, population: Population, score_function,
                            codec=None) -> EvolutionEngine:
    """
    工廠函數：根據配置創建演化引擎

    Args:
        config: 配置字典
        population: 已初始化的族群
        score_function: 評分函數
        codec: 基因組解碼器，預設為恆等 CODEC

    Returns:
        配置好的演化引擎實例

    Raises:
        ConfigurationError: 如果配置參數無效
    """
    logger.info("🏗️ 創建演化引擎...")

    operations = _entries(config, 'operations', 'operator')
    if not operations:
        raise ConfigurationError("配置至少需要一個演化操作 (operations)")

    selection_config = config.get('selection', {'method': 'tournament'})
    selection = _create_component('selection', selection_config.get('method', 'tournament'),
                                  selection_config.get('parameters'))

    speciation_config = config.get('speciation', {'method': 'single'})
    speciation = _create_component('speciation', speciation_config.get('method', 'single'),
                                   speciation_config.get('parameters'))

    seed = config.get('evolution', {}).get('seed')
    engine = EvolutionEngine(population, score_function, codec=codec, selection=selection,
                             speciation=speciation, seed=seed, config=config)
    logger.info(f"   ├─ 選擇策略: {selection.name}")
    logger.info(f"   ├─ 物種劃分: {speciation.name}")

    for entry in operations:
        operator = _create_component('operations', entry['operator'], entry.get('parameters'))
        engine.add_operation(entry.get('probability', 1.0), operator)
        logger.info(f"   ├─ 演化操作: {entry['operator']} (weight={entry.get('probability', 1.0)})")

    for entry in _entries(config, 'score_adjusters', 'method'):
        engine.add_score_adjuster(_create_component('score_adjusters', entry['method'], entry.get('parameters')))
        logger.info(f"   ├─ 分數調整器: {entry['method']}")

    for entry in _entries(config, 'validators', 'method'):
        engine.add_validator(_create_component('validators', entry['method'], entry.get('parameters')))

    for entry in _entries(config, 'handlers', 'method'):
        engine.add_handler(_create_component('handlers', entry['method'], entry.get('parameters')))

    logger.info(f"✅ 演化引擎創建完成! (ID: {engine.engine_id})")
    return engine


__all__ = [
    'EvolutionEngine', 'EngineState', 'EvolutionResult', 'Genome', 'Population', 'Species',
    'EvolutionError', 'ConfigurationError', 'OffspringInvalid', 'TrainingFailure',
    'LifecycleError', 'InitializationError',
    'create_evolution_engine', 'create_population', 'load_config',
]
