"""
Screening pipelines.

Provides:
- BaseScreener contract and the built-in screeners
- ScreenerRegistry for creating screeners by id
- ScreenerModel pipelines, their execution and persistence
- Batch execution of several models over one universe
"""

from screener_engine.screeners.base import BaseScreener, ScreenerParameters
from screener_engine.screeners.batch import ExecutionSession, ScreenerBatchRunner
from screener_engine.screeners.model_manager import ModelManager
from screener_engine.screeners.models import (
    ModelResult,
    ScreenedSymbol,
    ScreenerModel,
    ScreenerStep,
    StepResult,
)
from screener_engine.screeners.pipeline import ScreenerPipeline
from screener_engine.screeners.registry import ScreenerRegistry

__all__ = [
    "BaseScreener",
    "ExecutionSession",
    "ModelManager",
    "ModelResult",
    "ScreenedSymbol",
    "ScreenerBatchRunner",
    "ScreenerModel",
    "ScreenerParameters",
    "ScreenerPipeline",
    "ScreenerRegistry",
    "ScreenerStep",
    "StepResult",
]
