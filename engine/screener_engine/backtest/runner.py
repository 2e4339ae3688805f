"""
Backtest runner.

Replays screener models over a range of trading dates without look-ahead:
for every date the master cache is sliced to that date, then every enabled
model runs against the universe using only the slice.

Lifecycle:
    IDLE -> PREPARING -> RUNNING -> COMPLETED | FAILED | CANCELLED -> IDLE

run() returns a Future immediately; the work happens on a single worker
thread and dates are processed strictly in order. Progress is reported as
plain dict events through progress_callback, invoked on the worker thread.
"""

import colorsys
import random
import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import UTC, date, datetime
from typing import Any
from uuid import uuid4

from screener_engine.backtest.cache_slicer import (
    cache_validation_report,
    slice_up_to,
    symbol_count_at_date,
)
from screener_engine.backtest.calendar import generate_trading_dates
from screener_engine.backtest.models import (
    BacktestFailure,
    BacktestOutcome,
    BacktestSession,
    BacktestStatus,
    DailyBacktestResult,
    RunnerState,
)
from screener_engine.cancellation import CancellationToken
from screener_engine.data.stooq_store import StooqDataStore
from screener_engine.domain import BarCache
from screener_engine.errors import (
    CacheValidationError,
    InvalidDateRangeError,
    ModelValidationError,
    RunnerBusyError,
    ScreenerEngineError,
)
from screener_engine.logging import clear_run_id, get_logger, set_run_id
from screener_engine.screeners.base import BaseScreener
from screener_engine.screeners.models import ScreenerModel
from screener_engine.screeners.pipeline import ScreenerPipeline
from screener_engine.screeners.registry import ScreenerRegistry

logger = get_logger(__name__)

ProgressCallback = Callable[[dict[str, Any]], None]

# Symbols listed in a validation failure
_MAX_REPORTED_SYMBOLS = 50


def calculate_max_bars_for_models(
    models: Sequence[ScreenerModel],
    registry: ScreenerRegistry,
) -> int:
    """
    Largest min_bars_required across every step of every model.

    Raises:
        UnknownScreenerError: If a step names an unregistered screener
        ConfigurationError: If a step's parameters are invalid
    """
    return max(
        (
            registry.create(step.screener_id, step.parameters).min_bars_required
            for model in models
            for step in model.steps
        ),
        default=0,
    )


def assign_colors_to_models(
    models: Sequence[ScreenerModel],
    seed: int | None = None,
) -> dict[str, str]:
    """
    Assign a distinct display color to each model.

    Hues are spread evenly around the color wheel from a random starting
    point, so the same seed always yields the same colors.

    Returns:
        model_id -> "#rrggbb"
    """
    if not models:
        return {}
    rng = random.Random(seed)
    offset = rng.random()
    colors = {}
    for i, model in enumerate(models):
        hue = (offset + i / len(models)) % 1.0
        saturation = rng.uniform(0.55, 0.85)
        value = rng.uniform(0.75, 0.95)
        r, g, b = colorsys.hsv_to_rgb(hue, saturation, value)
        colors[model.model_id] = f"#{int(r * 255):02x}{int(g * 255):02x}{int(b * 255):02x}"
    return colors


class BacktestRunner:
    """
    Runs day-by-day backtests of screener models.

    Usage:
        runner = BacktestRunner(registry, progress_callback=print)
        future = runner.run(models, date(2024, 1, 2), date(2024, 3, 28), cache, "SPY.US")
        outcome = future.result()
        if outcome.is_completed:
            outcome.session.save_to_path(path)
    """

    def __init__(
        self,
        registry: ScreenerRegistry,
        progress_callback: ProgressCallback | None = None,
        color_seed: int | None = None,
    ) -> None:
        """
        Initialize runner.

        Args:
            registry: Screener registry used to build model steps
            progress_callback: Receives event dicts on the worker thread
            color_seed: Seed for model color assignment (None = random)
        """
        self.registry = registry
        self.pipeline = ScreenerPipeline(registry)
        self.progress_callback = progress_callback
        self.color_seed = color_seed

        self._lock = threading.Lock()
        self._state = RunnerState.IDLE
        self._last_status: BacktestStatus | None = None
        self._progress = 0.0
        self._token: CancellationToken | None = None
        self._executor: ThreadPoolExecutor | None = None

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> RunnerState:
        with self._lock:
            return self._state

    @property
    def is_running(self) -> bool:
        return self.state in (RunnerState.PREPARING, RunnerState.RUNNING)

    @property
    def progress(self) -> float:
        """Fraction of dates processed in the current (or last) run, 0..1."""
        with self._lock:
            return self._progress

    @property
    def last_status(self) -> BacktestStatus | None:
        """Terminal status of the most recent run."""
        with self._lock:
            return self._last_status

    def _set_state(self, state: RunnerState) -> None:
        with self._lock:
            self._state = state

    # =========================================================================
    # Public API
    # =========================================================================

    def run(
        self,
        models: Sequence[ScreenerModel],
        start_date: date,
        end_date: date,
        master_cache: BarCache,
        benchmark_symbol: str = "",
        universe: Sequence[str] | None = None,
        cancellation_token: CancellationToken | None = None,
    ) -> "Future[BacktestOutcome]":
        """
        Start a backtest and return immediately.

        Args:
            models: Models to test; disabled models are skipped
            start_date: First simulated date
            end_date: Last simulated date (inclusive)
            master_cache: Bars from (start_date - lookback) to end_date; not modified
            benchmark_symbol: Symbol whose bars are attached to the session
            universe: Symbols to screen (defaults to every symbol in the cache)
            cancellation_token: External token; a fresh one is created if omitted

        Returns:
            Future resolving to the BacktestOutcome. Failures are reported
            through the outcome, not raised from the future.

        Raises:
            RunnerBusyError: If a backtest is already running on this runner
        """
        token = cancellation_token or CancellationToken()
        with self._lock:
            if self._state in (RunnerState.PREPARING, RunnerState.RUNNING):
                raise RunnerBusyError("A backtest is already running on this runner")
            self._state = RunnerState.PREPARING
            self._progress = 0.0
            self._token = token
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix="backtest-runner"
                )
            executor = self._executor

        # Snapshot inputs so later edits by the caller cannot leak into the run
        model_snapshot = list(models)
        universe_snapshot = list(universe) if universe is not None else None

        return executor.submit(
            self._execute,
            model_snapshot,
            start_date,
            end_date,
            master_cache,
            benchmark_symbol,
            universe_snapshot,
            token,
        )

    def run_sync(self, *args: Any, **kwargs: Any) -> BacktestOutcome:
        """Run a backtest and block until it ends."""
        return self.run(*args, **kwargs).result()

    def cancel(self) -> bool:
        """
        Request cancellation of the running backtest.

        Takes effect before the next date starts; a date already in
        progress is completed.

        Returns:
            True if a running backtest was signalled
        """
        with self._lock:
            token = self._token
            running = self._state in (RunnerState.PREPARING, RunnerState.RUNNING)
        if token is None or not running:
            return False
        logger.info("Backtest cancellation requested")
        return token.cancel()

    def calculate_max_bars(self, models: Sequence[ScreenerModel]) -> int:
        return calculate_max_bars_for_models(models, self.registry)

    def shutdown(self, wait: bool = True) -> None:
        """Stop the worker thread once the current run ends."""
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)

    # =========================================================================
    # Worker
    # =========================================================================

    def _execute(
        self,
        models: list[ScreenerModel],
        start_date: date,
        end_date: date,
        master_cache: BarCache,
        benchmark_symbol: str,
        universe: list[str] | None,
        token: CancellationToken,
    ) -> BacktestOutcome:
        run_id = f"bt-{uuid4().hex[:8]}"
        set_run_id(run_id)
        started = time.time()

        self._emit({"type": "started", "run_id": run_id})
        logger.info("Backtest %s..%s started with %d models", start_date, end_date, len(models))

        try:
            outcome = self._run_backtest(
                models,
                start_date,
                end_date,
                master_cache,
                benchmark_symbol,
                universe,
                token,
                started,
            )
        except ScreenerEngineError as e:
            logger.error("Backtest failed: %s", e.message)
            outcome = BacktestOutcome(
                status=BacktestStatus.FAILED,
                error=BacktestFailure(code=e.code, message=e.message, details=e.details),
            )
        except Exception as e:
            logger.exception("Unexpected error during backtest")
            outcome = BacktestOutcome(
                status=BacktestStatus.FAILED,
                error=BacktestFailure(
                    code="unexpected_error",
                    message=str(e),
                    details={"exception": type(e).__name__},
                ),
            )

        terminal = {
            BacktestStatus.COMPLETED: RunnerState.COMPLETED,
            BacktestStatus.CANCELLED: RunnerState.CANCELLED,
            BacktestStatus.FAILED: RunnerState.FAILED,
        }[outcome.status]
        self._set_state(terminal)

        if outcome.status == BacktestStatus.COMPLETED:
            self._emit({"type": "completed", "session": outcome.session})
        elif outcome.status == BacktestStatus.CANCELLED:
            self._emit({"type": "cancelled", "session": outcome.session})
        else:
            self._emit({"type": "failed", "error": outcome.error})

        logger.info(
            "Backtest finished: %s in %.2fs",
            outcome.status.value,
            time.time() - started,
        )
        clear_run_id()

        with self._lock:
            self._last_status = outcome.status
            self._state = RunnerState.IDLE
            self._token = None
        return outcome

    def _prepare(
        self,
        models: list[ScreenerModel],
        start_date: date,
        end_date: date,
        master_cache: BarCache,
        universe: list[str] | None,
    ) -> tuple[list[ScreenerModel], dict[str, list[BaseScreener]], list[str], BarCache, list[date]]:
        """Validate inputs and build everything the date loop needs."""
        if end_date < start_date:
            raise InvalidDateRangeError(
                f"End date {end_date} is before start date {start_date}",
                {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            )

        enabled = [m for m in models if m.is_enabled]
        if not enabled:
            raise ModelValidationError("No enabled models to backtest", {"models": len(models)})

        self._emit({"type": "preparing", "message": f"Building {len(enabled)} models"})
        built = {m.model_id: self.pipeline.build_screeners(m) for m in enabled}
        max_bars = max(
            (s.min_bars_required for screeners in built.values() for s in screeners),
            default=0,
        )

        symbols = list(dict.fromkeys(universe)) if universe is not None else sorted(master_cache)
        universe_cache = {symbol: master_cache.get(symbol, []) for symbol in symbols}

        self._emit(
            {
                "type": "preparing",
                "message": f"Validating {len(symbols)} symbols for {max_bars} bars of history",
            }
        )
        report = cache_validation_report(universe_cache, start_date, end_date, max_bars)
        if not report.valid:
            shortfalls = dict(list(report.insufficient.items())[:_MAX_REPORTED_SYMBOLS])
            raise CacheValidationError(
                f"Cache validation failed: {report.reason}",
                {
                    "min_bars_required": max_bars,
                    "insufficient_count": len(report.insufficient),
                    "insufficient": shortfalls,
                },
            )
        if report.empty_symbols:
            logger.warning("%d symbols have no bars and will never pass", len(report.empty_symbols))

        dates = generate_trading_dates(start_date, end_date)
        if not dates:
            raise InvalidDateRangeError(
                f"No trading days between {start_date} and {end_date}",
                {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            )

        return enabled, built, symbols, universe_cache, dates

    def _run_backtest(
        self,
        models: list[ScreenerModel],
        start_date: date,
        end_date: date,
        master_cache: BarCache,
        benchmark_symbol: str,
        universe: list[str] | None,
        token: CancellationToken,
        started: float,
    ) -> BacktestOutcome:
        enabled, built, symbols, universe_cache, dates = self._prepare(
            models, start_date, end_date, master_cache, universe
        )

        session = BacktestSession(
            start_date=start_date,
            end_date=end_date,
            benchmark_symbol=benchmark_symbol,
            benchmark_bars=StooqDataStore.filter_bars(
                master_cache.get(benchmark_symbol, []), start_date, end_date
            ),
            models=enabled,
            model_colors=assign_colors_to_models(enabled, self.color_seed),
        )

        self._set_state(RunnerState.RUNNING)
        total_days = len(dates)
        self._emit({"type": "execution_started", "days": total_days, "models": len(enabled)})

        processed = 0
        for day_number, day in enumerate(dates, start=1):
            if token.is_cancelled:
                logger.info("Cancelled before %s (%d/%d dates done)", day, processed, total_days)
                break

            self._emit(
                {
                    "type": "date_started",
                    "date": day,
                    "day_number": day_number,
                    "total_days": total_days,
                }
            )

            sliced = slice_up_to(universe_cache, day)
            symbols_with_data = symbol_count_at_date(sliced, day)

            # Results for a date are published only once every model has run
            day_results = []
            for model in enabled:
                model_start = time.perf_counter()
                result = self.pipeline.execute(
                    model, symbols, sliced, screeners=built[model.model_id]
                )
                day_results.append(
                    DailyBacktestResult(
                        date=day,
                        model_id=model.model_id,
                        model_name=model.display_name,
                        screened_symbols=result.screened_symbols,
                        symbol_count=result.symbol_count,
                        execution_time=time.perf_counter() - model_start,
                        metadata={
                            "universe_size": len(symbols),
                            "symbols_with_data": symbols_with_data,
                            "step_counts": [s.output_count for s in result.step_results],
                        },
                    )
                )
                self._emit(
                    {
                        "type": "model_completed",
                        "model_id": model.model_id,
                        "model_name": model.display_name,
                        "date": day,
                        "symbol_count": result.symbol_count,
                    }
                )

            session.daily_results.extend(day_results)
            processed += 1

            progress = processed / total_days
            with self._lock:
                self._progress = progress
            self._emit({"type": "date_completed", "date": day, "day_number": day_number})
            self._emit({"type": "progress", "progress": progress})

        session.total_execution_time = time.time() - started

        if processed < total_days:
            session.status = BacktestStatus.CANCELLED
            return BacktestOutcome(status=BacktestStatus.CANCELLED, session=session)

        session.status = BacktestStatus.COMPLETED
        logger.info(
            "Backtest completed: %d dates, %d results",
            processed,
            len(session.daily_results),
        )
        return BacktestOutcome(status=BacktestStatus.COMPLETED, session=session)

    def _emit(self, data: dict[str, Any]) -> None:
        """Emit progress event."""
        if not self.progress_callback:
            return
        try:
            self.progress_callback({"ts": datetime.now(UTC).isoformat(), **data})
        except Exception:
            logger.exception("Progress callback failed for %s event", data.get("type"))
