"""分數函數模組"""

from .base import ScoreFunction, CallableScoreFunction

__all__ = ['ScoreFunction', 'CallableScoreFunction']
