"""
事件處理器模組
"""

from .base import EventHandler
from .logging_handler import LoggingHandler
from .early_stopping_handler import EarlyStoppingHandler

__all__ = [
    'EventHandler',
    'LoggingHandler',
    'EarlyStoppingHandler'
]
