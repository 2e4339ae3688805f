"""
Backtest data models.

Defines contracts for daily results, sessions, runner state and outcomes.
"""

import bisect
import datetime as dt
from enum import Enum
from pathlib import Path
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from screener_engine.backtest.calendar import count_trading_days
from screener_engine.domain import Bar
from screener_engine.errors import PersistenceError
from screener_engine.logging import get_logger
from screener_engine.screeners.models import ScreenedSymbol, ScreenerModel
from screener_engine.storage import atomic_write_text

logger = get_logger(__name__)


class RunnerState(str, Enum):
    """Backtest runner lifecycle."""

    IDLE = "idle"
    PREPARING = "preparing"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class BacktestStatus(str, Enum):
    """Terminal status of a backtest run."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


# =============================================================================
# Result Models
# =============================================================================


class BacktestStatistics(BaseModel):
    """Forward performance of the symbols a model selected on one date."""

    model_config = ConfigDict(frozen=True)

    win_rate: float = Field(..., ge=0, le=100, description="Winning trades, percent")
    avg_gain: float = Field(default=0.0, description="Mean return of winners, percent")
    avg_loss: float = Field(default=0.0, description="Mean return of losers, percent")
    trade_count: int = Field(default=0, ge=0)
    win_loss_ratio: float | None = Field(
        default=None, description="Winners / losers, None without losers"
    )
    holding_period: int = Field(default=0, ge=0, description="Bars held")


class DailyBacktestResult(BaseModel):
    """Result of running one model on one simulated date. Immutable."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    date: dt.date
    model_id: str
    model_name: str
    screened_symbols: list[ScreenedSymbol] = Field(default_factory=list)
    symbol_count: int = Field(default=0, ge=0)
    execution_time: float = Field(default=0.0, ge=0, description="Seconds")

    # Filled in later by the statistics calculator
    win_rate: float | None = None
    avg_gain: float | None = None
    avg_loss: float | None = None
    trade_count: int | None = None
    win_loss_ratio: float | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def symbols(self) -> list[str]:
        return [s.symbol for s in self.screened_symbols]

    @property
    def has_statistics(self) -> bool:
        return self.win_rate is not None

    def with_statistics(self, stats: BacktestStatistics) -> "DailyBacktestResult":
        """New result carrying the given statistics."""
        return self.model_copy(
            update={
                "win_rate": stats.win_rate,
                "avg_gain": stats.avg_gain,
                "avg_loss": stats.avg_loss,
                "trade_count": stats.trade_count,
                "win_loss_ratio": stats.win_loss_ratio,
                "metadata": {**self.metadata, "holding_period": stats.holding_period},
            }
        )


class BacktestSession(BaseModel):
    """
    Aggregate of one backtest run.

    Built by the runner, which owns it exclusively until the run ends and
    the session is handed to the caller.
    """

    session_id: str = Field(default_factory=lambda: str(uuid4()))
    created_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.UTC))
    status: BacktestStatus = BacktestStatus.COMPLETED
    start_date: dt.date
    end_date: dt.date
    benchmark_symbol: str = ""
    benchmark_bars: list[Bar] = Field(default_factory=list)
    models: list[ScreenerModel] = Field(default_factory=list)
    daily_results: list[DailyBacktestResult] = Field(default_factory=list)
    model_colors: dict[str, str] = Field(
        default_factory=dict, description="model_id -> #RRGGBB display hint"
    )
    total_execution_time: float = Field(default=0.0, ge=0, description="Seconds")

    @property
    def trading_days_count(self) -> int:
        """Weekdays in the requested range."""
        return count_trading_days(self.start_date, self.end_date)

    @property
    def processed_days_count(self) -> int:
        return len(self.all_dates())

    def results_for_model_id(self, model_id: str) -> list[DailyBacktestResult]:
        return [r for r in self.daily_results if r.model_id == model_id]

    def results_for_date(self, day: dt.date) -> list[DailyBacktestResult]:
        """One result per model for the given date."""
        return [r for r in self.daily_results if r.date == day]

    def result_for(self, day: dt.date, model_id: str) -> DailyBacktestResult | None:
        for result in self.daily_results:
            if result.date == day and result.model_id == model_id:
                return result
        return None

    def all_dates(self) -> list[dt.date]:
        """Unique result dates, ascending."""
        return sorted({r.date for r in self.daily_results})

    def benchmark_bar_for_date(self, day: dt.date) -> Bar | None:
        index = bisect.bisect_left(self.benchmark_bars, day, key=lambda b: b.timestamp)
        if index < len(self.benchmark_bars) and self.benchmark_bars[index].timestamp == day:
            return self.benchmark_bars[index]
        return None

    def model_by_id(self, model_id: str) -> ScreenerModel | None:
        for model in self.models:
            if model.model_id == model_id:
                return model
        return None

    # =========================================================================
    # Persistence
    # =========================================================================

    def save_to_path(self, path: Path) -> Path:
        """
        Save session as a JSON document.

        Raises:
            PersistenceError: If the file cannot be written
        """
        path = Path(path)
        try:
            atomic_write_text(path, self.model_dump_json(indent=2))
        except OSError as e:
            logger.error("Failed to save session %s: %s", self.session_id, e)
            raise PersistenceError(
                f"Failed to save backtest session: {e}",
                {"session_id": self.session_id, "path": str(path)},
            ) from e
        logger.debug("Saved session %s to %s", self.session_id, path)
        return path

    @classmethod
    def load_from_path(cls, path: Path) -> "BacktestSession":
        """
        Load a session saved by save_to_path.

        Raises:
            PersistenceError: If the file is missing or not a valid session
        """
        path = Path(path)
        try:
            return cls.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            raise PersistenceError(
                f"Failed to load backtest session from {path}: {e}",
                {"path": str(path)},
            ) from e


# =============================================================================
# Outcome Models
# =============================================================================


class BacktestFailure(BaseModel):
    """Structured error for a failed run."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class BacktestOutcome(BaseModel):
    """
    Terminal result of BacktestRunner.run().

    Completed and cancelled runs carry a session; failed runs carry an
    error and no session.
    """

    status: BacktestStatus
    session: BacktestSession | None = None
    error: BacktestFailure | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == BacktestStatus.COMPLETED

    @property
    def is_cancelled(self) -> bool:
        return self.status == BacktestStatus.CANCELLED

    @property
    def is_failed(self) -> bool:
        return self.status == BacktestStatus.FAILED
