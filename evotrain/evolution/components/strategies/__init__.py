"""
演化策略模組

包含所有演化策略的實現：
- 選擇策略
- 演化操作與加權操作列表
- 分數調整器
- 物種劃分
- 基因組驗證器
"""

from .base import EvolutionStrategy
from .selection import SelectionStrategy, TournamentSelection, TruncationSelection
from .operation import EvolutionaryOperator, OperationList, OperationResult, OperationStatus
from .score import AdjustScore, ScoreContext, ComplexityAdjustedScore, StagnationAdjustedScore
from .speciation import Speciation, SingleSpeciation, ThresholdSpeciation, ArrayThresholdSpeciation
from .validation import GenomeValidator, MaxSizeValidator, FiniteArrayValidator

__all__ = [
    'EvolutionStrategy',
    # 選擇策略
    'SelectionStrategy', 'TournamentSelection', 'TruncationSelection',
    # 操作
    'EvolutionaryOperator', 'OperationList', 'OperationResult', 'OperationStatus',
    # 分數調整
    'AdjustScore', 'ScoreContext', 'ComplexityAdjustedScore', 'StagnationAdjustedScore',
    # 物種劃分
    'Speciation', 'SingleSpeciation', 'ThresholdSpeciation', 'ArrayThresholdSpeciation',
    # 驗證器
    'GenomeValidator', 'MaxSizeValidator', 'FiniteArrayValidator',
]
