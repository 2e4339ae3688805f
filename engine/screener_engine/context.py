"""
Engine service context.

Builds the engine's long-lived services once from Settings and hands them
out as one object. Nothing in the engine is a module-level singleton;
callers that need a registry or manager take it from the context.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from screener_engine.backtest.runner import BacktestRunner
from screener_engine.config import Settings, get_settings
from screener_engine.data import StooqDataStore
from screener_engine.logging import get_logger, setup_logging
from screener_engine.scoring import (
    DataRequirementCalculator,
    IndicatorRegistry,
    ScoreCalculator,
    StrategyManager,
)
from screener_engine.screeners import (
    ModelManager,
    ScreenerBatchRunner,
    ScreenerPipeline,
    ScreenerRegistry,
)

logger = get_logger(__name__)

ProgressCallback = Callable[[dict[str, Any]], None]


@dataclass
class EngineContext:
    """Wired engine services."""

    settings: Settings
    store: StooqDataStore
    screener_registry: ScreenerRegistry
    pipeline: ScreenerPipeline
    model_manager: ModelManager
    indicator_registry: IndicatorRegistry
    strategy_manager: StrategyManager
    score_calculator: ScoreCalculator
    requirement_calculator: DataRequirementCalculator

    def create_runner(
        self,
        progress_callback: ProgressCallback | None = None,
        color_seed: int | None = None,
    ) -> BacktestRunner:
        """New backtest runner sharing this context's screener registry."""
        return BacktestRunner(
            self.screener_registry,
            progress_callback=progress_callback,
            color_seed=color_seed,
        )

    def create_batch_runner(
        self, progress_callback: ProgressCallback | None = None
    ) -> ScreenerBatchRunner:
        return ScreenerBatchRunner(self.store, self.pipeline, progress_callback)

    def close(self) -> None:
        self.store.close()


def build_engine_context(
    settings: Settings | None = None,
    configure_logging: bool = False,
) -> EngineContext:
    """
    Build every engine service from settings.

    Args:
        settings: Settings to use (default: get_settings())
        configure_logging: Also call setup_logging() with the settings' level

    Returns:
        Wired EngineContext, with any missing built-in strategies seeded.
    """
    settings = settings or get_settings()
    if configure_logging:
        setup_logging(level=settings.log_level, json_output=settings.log_json)

    screener_registry = ScreenerRegistry.with_builtins()
    indicator_registry = IndicatorRegistry.with_builtins()

    store = StooqDataStore(
        settings.resolved_stooq_dir,
        selected_exchanges=settings.selected_exchanges,
        max_workers=settings.load_max_workers,
        safety_margin_days=settings.extended_load_safety_margin_days,
    )
    strategy_manager = StrategyManager(settings.resolved_strategies_dir, indicator_registry)
    strategy_manager.ensure_default_strategy()

    context = EngineContext(
        settings=settings,
        store=store,
        screener_registry=screener_registry,
        pipeline=ScreenerPipeline(screener_registry),
        model_manager=ModelManager(settings.resolved_models_dir, screener_registry),
        indicator_registry=indicator_registry,
        strategy_manager=strategy_manager,
        score_calculator=ScoreCalculator(indicator_registry, settings.score_max_workers),
        requirement_calculator=DataRequirementCalculator(indicator_registry),
    )
    logger.info("Engine context built: %s", settings.get_redacted_config())
    return context
