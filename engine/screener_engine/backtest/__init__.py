"""
Backtest simulation for screener models.

Provides:
- Point-in-time cache slicing (no look-ahead)
- Weekday trading calendar
- BacktestRunner with progress events and cooperative cancellation
- Session persistence and forward-return statistics
"""

from screener_engine.backtest.cache_slicer import CacheSlicer, CacheValidationReport
from screener_engine.backtest.calendar import generate_trading_dates
from screener_engine.backtest.models import (
    BacktestFailure,
    BacktestOutcome,
    BacktestSession,
    BacktestStatistics,
    BacktestStatus,
    DailyBacktestResult,
    RunnerState,
)
from screener_engine.backtest.runner import (
    BacktestRunner,
    assign_colors_to_models,
    calculate_max_bars_for_models,
)

__all__ = [
    "BacktestFailure",
    "BacktestOutcome",
    "BacktestRunner",
    "BacktestSession",
    "BacktestStatistics",
    "BacktestStatus",
    "CacheSlicer",
    "CacheValidationReport",
    "DailyBacktestResult",
    "RunnerState",
    "assign_colors_to_models",
    "calculate_max_bars_for_models",
    "generate_trading_dates",
]
