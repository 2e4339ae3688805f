"""
Screener model execution.

A model is a sequential AND reduction: the candidate list starts as the
universe and each step keeps only the symbols that pass it. Steps run in
declared order; later steps only see survivors of earlier ones.
"""

import time
from collections.abc import Sequence
from datetime import date
from typing import Any

from screener_engine.domain import Bar, BarCache
from screener_engine.errors import ModelValidationError
from screener_engine.logging import get_logger
from screener_engine.screeners.base import BaseScreener
from screener_engine.screeners.models import (
    ModelResult,
    ScreenedSymbol,
    ScreenerModel,
    StepResult,
)
from screener_engine.screeners.registry import ScreenerRegistry

logger = get_logger(__name__)


def symbol_metadata(bars: Sequence[Bar]) -> dict[str, Any]:
    """Price/volume snapshot of the last bar for downstream consumers."""
    if not bars:
        return {}
    last = bars[-1]
    metadata: dict[str, Any] = {
        "close": last.close,
        "volume": last.volume,
        "dollar_volume": last.dollar_volume,
        "last_date": last.timestamp.isoformat(),
    }
    if len(bars) > 1 and bars[-2].close > 0:
        metadata["change_pct"] = round((last.close - bars[-2].close) / bars[-2].close * 100, 4)
    return metadata


def latest_date(cache: BarCache) -> date | None:
    """Most recent bar date across the cache."""
    last_dates = [bars[-1].timestamp for bars in cache.values() if bars]
    return max(last_dates) if last_dates else None


class ScreenerPipeline:
    """Runs screener models against a bar cache."""

    def __init__(self, registry: ScreenerRegistry) -> None:
        self.registry = registry

    def build_screeners(self, model: ScreenerModel) -> list[BaseScreener]:
        """
        Instantiate every step of a model.

        Raises:
            ModelValidationError: If the model has no steps
            UnknownScreenerError: If a step names an unregistered screener
            ConfigurationError: If a step's parameters are invalid
        """
        if not model.steps:
            raise ModelValidationError(
                f"Model '{model.display_name}' has no steps",
                {"model_id": model.model_id},
            )
        return [self.registry.create(step.screener_id, step.parameters) for step in model.steps]

    def min_bars_required(self, model: ScreenerModel) -> int:
        """Largest minimum-bars requirement across the model's steps (0 if empty)."""
        if not model.steps:
            return 0
        return max(screener.min_bars_required for screener in self.build_screeners(model))

    def execute(
        self,
        model: ScreenerModel,
        universe: Sequence[str],
        cache: BarCache,
        screeners: list[BaseScreener] | None = None,
    ) -> ModelResult:
        """
        Execute a model.

        Args:
            model: Model to run
            universe: Initial candidate symbols
            cache: Bar cache, already sliced to the evaluation date
            screeners: Pre-built screeners for this model (built when omitted)

        Returns:
            ModelResult with per-step results and the final screened symbols
        """
        if screeners is None:
            screeners = self.build_screeners(model)

        start_time = time.perf_counter()
        candidates = list(dict.fromkeys(universe))
        universe_size = len(candidates)
        step_results: list[StepResult] = []

        for index, screener in enumerate(screeners):
            step_start = time.perf_counter()
            input_count = len(candidates)
            candidates = screener.execute(candidates, cache)
            step_results.append(
                StepResult(
                    step_index=index,
                    screener_id=screener.screener_id,
                    screener_name=screener.display_name,
                    input_count=input_count,
                    symbols=list(candidates),
                    execution_time=time.perf_counter() - step_start,
                )
            )
            logger.debug(
                "%s step %d (%s): %d -> %d",
                model.display_name,
                index,
                screener.screener_id,
                input_count,
                len(candidates),
            )

        final_step = len(screeners) - 1
        screened = [
            ScreenedSymbol(
                symbol=symbol,
                added_at_step=final_step,
                metadata=symbol_metadata(cache.get(symbol, [])),
            )
            for symbol in candidates
        ]

        return ModelResult(
            model_id=model.model_id,
            model_name=model.display_name,
            as_of=latest_date(cache),
            initial_universe_size=universe_size,
            step_results=step_results,
            screened_symbols=screened,
            total_execution_time=time.perf_counter() - start_time,
        )
