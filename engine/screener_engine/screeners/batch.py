"""
Batch execution of screener models against today's data.

Loads the universe once, runs each model on the same cache, and collects
the per-model results into an ExecutionSession that can be archived.
"""

import time
from collections import defaultdict
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, ValidationError

from screener_engine.cancellation import CancellationToken
from screener_engine.data.stooq_store import StooqDataStore
from screener_engine.domain import BarCache
from screener_engine.errors import PersistenceError, ScreenerEngineError
from screener_engine.logging import get_logger
from screener_engine.screeners.models import ModelResult, ScreenedSymbol, ScreenerModel
from screener_engine.screeners.pipeline import ScreenerPipeline
from screener_engine.storage import atomic_write_text

logger = get_logger(__name__)


class ExecutionSession(BaseModel):
    """Archive of one batch execution."""

    session_id: str = Field(default_factory=lambda: str(uuid4()))
    execution_date: datetime = Field(default_factory=lambda: datetime.now(UTC))
    universe: list[str] = Field(default_factory=list)
    model_results: list[ModelResult] = Field(default_factory=list)
    total_execution_time: float = Field(default=0.0, ge=0)
    cancelled: bool = False
    notes: str | None = None

    @property
    def total_models(self) -> int:
        return len(self.model_results)

    @property
    def total_symbols(self) -> int:
        """Selected symbols summed across models (duplicates counted)."""
        return sum(r.symbol_count for r in self.model_results)

    def all_unique_symbols(self) -> set[str]:
        return {s.symbol for r in self.model_results for s in r.screened_symbols}

    def all_selected_symbols(self) -> list[ScreenedSymbol]:
        return [s for r in self.model_results for s in r.screened_symbols if s.is_selected]

    def symbols_in_multiple_models(self) -> dict[str, list[str]]:
        """Symbol -> names of the models that selected it, for symbols in 2+ models."""
        owners: dict[str, list[str]] = defaultdict(list)
        for result in self.model_results:
            for symbol in result.final_symbols:
                owners[symbol].append(result.model_name)
        return {symbol: names for symbol, names in owners.items() if len(names) > 1}

    def statistics(self) -> dict[str, Any]:
        counts = [r.symbol_count for r in self.model_results]
        return {
            "total_models": self.total_models,
            "total_symbols": self.total_symbols,
            "unique_symbols": len(self.all_unique_symbols()),
            "universe_size": len(self.universe),
            "avg_symbols_per_model": sum(counts) / len(counts) if counts else 0.0,
            "max_symbols_per_model": max(counts, default=0),
            "min_symbols_per_model": min(counts, default=0),
            "overlapping_symbols": len(self.symbols_in_multiple_models()),
            "total_execution_time": round(self.total_execution_time, 3),
        }

    def summary_string(self) -> str:
        """e.g. "5 models, 127 symbols, 12.3s"."""
        return (
            f"{self.total_models} models, {self.total_symbols} symbols, "
            f"{self.total_execution_time:.1f}s"
        )

    def save_to_path(self, path: Path) -> Path:
        try:
            atomic_write_text(Path(path), self.model_dump_json(indent=2))
        except OSError as e:
            raise PersistenceError(
                f"Failed to save execution session: {e}", {"path": str(path)}
            ) from e
        return Path(path)

    @classmethod
    def load_from_path(cls, path: Path) -> "ExecutionSession":
        try:
            return cls.model_validate_json(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            raise PersistenceError(
                f"Failed to load execution session: {e}", {"path": str(path)}
            ) from e


class ScreenerBatchRunner:
    """
    Runs several models against one universe.

    Progress events are plain dicts delivered to progress_callback on the
    calling thread: started, loading_data, data_loaded, model_started,
    model_completed, progress, completed, failed.
    """

    def __init__(
        self,
        store: StooqDataStore,
        pipeline: ScreenerPipeline,
        progress_callback: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        self.store = store
        self.pipeline = pipeline
        self.progress_callback = progress_callback
        self._token: CancellationToken | None = None

    @property
    def is_running(self) -> bool:
        return self._token is not None

    def cancel(self) -> None:
        """Stop before the next model starts."""
        if self._token is not None:
            self._token.cancel()

    def execute_model(
        self,
        model: ScreenerModel,
        universe: Sequence[str],
        cache: BarCache | None = None,
    ) -> ModelResult:
        """
        Execute a single model, loading the universe if no cache is given.
        """
        if cache is None:
            max_bars = self.pipeline.min_bars_required(model)
            cache = self.store.load(universe, min_bars=max_bars).cache
        return self.pipeline.execute(model, universe, cache)

    def execute_models(
        self,
        models: Sequence[ScreenerModel],
        universe: Sequence[str] | None = None,
        cache: BarCache | None = None,
    ) -> ExecutionSession:
        """
        Execute models against a shared universe.

        Args:
            models: Models to run; disabled models are skipped
            universe: Symbols to screen (defaults to every scanned symbol)
            cache: Pre-loaded bars; loaded from the store when omitted

        Returns:
            ExecutionSession holding one ModelResult per executed model

        Raises:
            ScreenerEngineError: If a model cannot be built or data cannot be loaded
        """
        self._token = CancellationToken()
        start_time = time.time()
        try:
            enabled = [m for m in models if m.is_enabled]
            symbols = list(universe) if universe is not None else self.store.available_symbols()
            self._emit({"type": "started", "models": len(enabled), "symbols": len(symbols)})

            built = {m.model_id: self.pipeline.build_screeners(m) for m in enabled}

            if cache is None:
                max_bars = max(
                    (s.min_bars_required for screeners in built.values() for s in screeners),
                    default=0,
                )
                self._emit({"type": "loading_data", "symbols": len(symbols), "max_bars": max_bars})
                load_result = self.store.load(symbols, min_bars=max_bars)
                cache = load_result.cache
                self._emit(
                    {
                        "type": "data_loaded",
                        "loaded": len(load_result.loaded_symbols),
                        "failed": len(load_result.failed_symbols),
                    }
                )

            results: list[ModelResult] = []
            for index, model in enumerate(enabled):
                if self._token.is_cancelled:
                    logger.info("Batch cancelled after %d/%d models", index, len(enabled))
                    break
                self._emit(
                    {
                        "type": "model_started",
                        "model_id": model.model_id,
                        "model_name": model.display_name,
                    }
                )
                result = self.pipeline.execute(
                    model, symbols, cache, screeners=built[model.model_id]
                )
                results.append(result)
                self._emit(
                    {
                        "type": "model_completed",
                        "model_id": model.model_id,
                        "model_name": model.display_name,
                        "symbol_count": result.symbol_count,
                    }
                )
                self._emit({"type": "progress", "progress": (index + 1) / len(enabled)})

            session = ExecutionSession(
                universe=symbols,
                model_results=results,
                total_execution_time=time.time() - start_time,
                cancelled=self._token.is_cancelled,
            )
            self._emit({"type": "completed", "session": session})
            logger.info("Batch execution finished: %s", session.summary_string())
            return session

        except ScreenerEngineError as e:
            logger.error("Batch execution failed: %s", e)
            self._emit({"type": "failed", "error": e.message, "code": e.code})
            raise
        finally:
            self._token = None

    def _emit(self, data: dict[str, Any]) -> None:
        """Emit progress event."""
        if not self.progress_callback:
            return
        try:
            self.progress_callback({"ts": datetime.now(UTC).isoformat(), **data})
        except Exception:
            logger.exception("Progress callback failed for %s event", data.get("type"))
