"""
File-backed storage for scoring strategies.

Directory structure:
{strategies_dir}/
    {strategy_id}.json     # one document per ScoringStrategy

Built-in strategies are written on first use by ensure_default_strategy()
and can be edited but not deleted.
"""

import re
import threading
from datetime import UTC, datetime
from pathlib import Path

from pydantic import ValidationError

from screener_engine.errors import (
    ConfigurationError,
    PersistenceError,
    StrategyValidationError,
)
from screener_engine.logging import get_logger
from screener_engine.scoring.models import IndicatorConfig, ScoringStrategy
from screener_engine.scoring.registry import IndicatorRegistry
from screener_engine.storage import atomic_write_text

logger = get_logger(__name__)

_STRATEGY_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

DEFAULT_STRATEGY_ID = "builtin-default"


def builtin_strategies() -> list[ScoringStrategy]:
    """Fresh copies of the built-in strategies."""
    return [
        ScoringStrategy(
            strategy_id=DEFAULT_STRATEGY_ID,
            strategy_name="Default",
            is_builtin=True,
            indicators=[
                IndicatorConfig(
                    indicator_type="DollarVolume", display_name="$ Volume", weight=20
                ),
                IndicatorConfig(
                    indicator_type="AscendingLows", display_name="Higher Lows", weight=15
                ),
                IndicatorConfig(indicator_type="BearTrap", display_name="Bear Trap", weight=10),
                IndicatorConfig(
                    indicator_type="PriceVsMA", display_name="Above 10 EMA", weight=20
                ),
                IndicatorConfig(indicator_type="UNR", display_name="UNR", weight=20),
                IndicatorConfig(
                    indicator_type="VolumeSpike", display_name="Vol Spike", weight=15
                ),
            ],
        ),
        ScoringStrategy(
            strategy_id="builtin-pullback",
            strategy_name="Pullback",
            is_builtin=True,
            indicators=[
                IndicatorConfig(
                    indicator_type="UNR",
                    display_name="UNR 20 SMA",
                    weight=40,
                    parameters={"ma_type": "sma", "ma_period": 20},
                ),
                IndicatorConfig(indicator_type="BearTrap", display_name="Bear Trap", weight=30),
                IndicatorConfig(
                    indicator_type="DollarVolume", display_name="$ Volume", weight=30
                ),
            ],
        ),
    ]


class StrategyManager:
    """
    JSON file-backed scoring strategy storage.

    Strategies are validated against the indicator registry when saved and
    when loaded. Invalid documents are reported through load_errors and
    skipped.
    """

    def __init__(self, strategies_dir: Path, registry: IndicatorRegistry) -> None:
        self._strategies_dir = Path(strategies_dir)
        self._strategies_dir.mkdir(parents=True, exist_ok=True)
        self._registry = registry

        self._lock = threading.RLock()
        self._strategies: dict[str, ScoringStrategy] = {}
        self._load_errors: dict[str, str] = {}
        self._loaded = False

    @property
    def strategies_dir(self) -> Path:
        return self._strategies_dir

    @property
    def load_errors(self) -> dict[str, str]:
        with self._lock:
            return dict(self._load_errors)

    def strategy_path(self, strategy_id: str) -> Path:
        if not _STRATEGY_ID_PATTERN.match(strategy_id):
            raise StrategyValidationError(
                f"Invalid strategy id '{strategy_id}'",
                {"strategy_id": strategy_id},
            )
        return self._strategies_dir / f"{strategy_id}.json"

    # =========================================================================
    # Loading
    # =========================================================================

    def reload_strategies(self) -> list[ScoringStrategy]:
        """
        Load every strategy document from disk, replacing the in-memory set.

        Returns:
            Valid strategies sorted by name
        """
        strategies: dict[str, ScoringStrategy] = {}
        errors: dict[str, str] = {}

        for path in sorted(self._strategies_dir.glob("*.json")):
            try:
                strategy = ScoringStrategy.model_validate_json(path.read_text(encoding="utf-8"))
                self.validate(strategy)
            except (OSError, ValidationError, ConfigurationError) as e:
                logger.warning("Skipping invalid strategy document %s: %s", path.name, e)
                errors[path.name] = str(e)
                continue

            if strategy.strategy_id in strategies:
                errors[path.name] = f"Duplicate strategy id {strategy.strategy_id}"
                continue
            strategies[strategy.strategy_id] = strategy

        with self._lock:
            self._strategies = strategies
            self._load_errors = errors
            self._loaded = True

        logger.info("Loaded %d strategies (%d rejected)", len(strategies), len(errors))
        return self.all_strategies()

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.reload_strategies()

    def ensure_default_strategy(self) -> ScoringStrategy:
        """
        Write any built-in strategy that has no document yet.

        Returns:
            The default strategy
        """
        self._ensure_loaded()
        for builtin in builtin_strategies():
            if self.strategy_path(builtin.strategy_id).exists():
                continue
            logger.info("Seeding built-in strategy '%s'", builtin.strategy_name)
            self._write(builtin)
            with self._lock:
                self._strategies[builtin.strategy_id] = builtin

        default = self.get(DEFAULT_STRATEGY_ID)
        if default is None:
            # Document exists but was rejected on load
            raise StrategyValidationError(
                "Default strategy document is invalid",
                {"strategy_id": DEFAULT_STRATEGY_ID, "errors": self.load_errors},
            )
        return default

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, strategy_id: str) -> ScoringStrategy | None:
        self._ensure_loaded()
        with self._lock:
            strategy = self._strategies.get(strategy_id)
        return strategy.model_copy(deep=True) if strategy else None

    def get_by_name(self, name: str) -> ScoringStrategy | None:
        """Case-insensitive lookup by strategy name."""
        wanted = name.strip().lower()
        for strategy in self.all_strategies():
            if strategy.strategy_name.strip().lower() == wanted:
                return strategy
        return None

    def all_strategies(self) -> list[ScoringStrategy]:
        """All strategies, built-ins first, then by name."""
        self._ensure_loaded()
        with self._lock:
            strategies = [s.model_copy(deep=True) for s in self._strategies.values()]
        return sorted(strategies, key=lambda s: (not s.is_builtin, s.strategy_name.lower()))

    # =========================================================================
    # Mutations
    # =========================================================================

    def validate(self, strategy: ScoringStrategy) -> None:
        """
        Validate a strategy against the registry.

        Raises:
            StrategyValidationError: If the name is blank, no enabled
                indicator carries weight, an indicator type is unknown or
                duplicated, or indicator parameters are invalid
        """
        details = {"strategy_id": strategy.strategy_id}
        if not strategy.strategy_name.strip():
            raise StrategyValidationError("Strategy name must not be blank", details)
        if strategy.total_weight <= 0:
            raise StrategyValidationError(
                f"Strategy '{strategy.strategy_name}' has zero total weight", details
            )

        seen: set[str] = set()
        for index, indicator in enumerate(strategy.enabled_indicators):
            if indicator.indicator_type in seen:
                raise StrategyValidationError(
                    f"Strategy '{strategy.strategy_name}' enables "
                    f"'{indicator.indicator_type}' more than once",
                    {**details, "indicator_type": indicator.indicator_type},
                )
            seen.add(indicator.indicator_type)
            try:
                calculator = self._registry.get(indicator.indicator_type)
                calculator.validate_parameters(indicator.parameters)
            except ConfigurationError as e:
                raise StrategyValidationError(
                    f"Strategy '{strategy.strategy_name}' indicator {index}: {e.message}",
                    {**details, "indicator": index, **e.details},
                ) from e

    def save(self, strategy: ScoringStrategy) -> ScoringStrategy:
        """
        Validate and persist a strategy.

        Returns:
            The stored strategy (date_modified refreshed)

        Raises:
            StrategyValidationError: If the strategy is invalid or its name
                is used by another strategy
            PersistenceError: If the document cannot be written
        """
        self.validate(strategy)
        existing = self.get_by_name(strategy.strategy_name)
        if existing is not None and existing.strategy_id != strategy.strategy_id:
            raise StrategyValidationError(
                f"A strategy named '{strategy.strategy_name}' already exists",
                {"strategy_id": strategy.strategy_id, "existing_id": existing.strategy_id},
            )

        stored = strategy.model_copy(deep=True, update={"date_modified": datetime.now(UTC)})
        self._write(stored)
        with self._lock:
            self._strategies[stored.strategy_id] = stored
        logger.debug("Saved strategy %s (%s)", stored.strategy_name, stored.strategy_id)
        return stored.model_copy(deep=True)

    def delete(self, strategy_id: str) -> bool:
        """
        Delete a user strategy.

        Returns:
            True if deleted, False if not found

        Raises:
            StrategyValidationError: If the strategy is built-in
        """
        self._ensure_loaded()
        path = self.strategy_path(strategy_id)
        with self._lock:
            strategy = self._strategies.get(strategy_id)
            if strategy is not None and strategy.is_builtin:
                raise StrategyValidationError(
                    f"Built-in strategy '{strategy.strategy_name}' cannot be deleted",
                    {"strategy_id": strategy_id},
                )
            existed = self._strategies.pop(strategy_id, None) is not None

        if path.exists():
            try:
                path.unlink()
            except OSError as e:
                raise PersistenceError(
                    f"Failed to delete strategy {strategy_id}: {e}",
                    {"strategy_id": strategy_id, "path": str(path)},
                ) from e
            existed = True
        return existed

    def _write(self, strategy: ScoringStrategy) -> None:
        path = self.strategy_path(strategy.strategy_id)
        try:
            atomic_write_text(path, strategy.model_dump_json(indent=2))
        except OSError as e:
            logger.error("Failed to save strategy %s: %s", strategy.strategy_id, e)
            raise PersistenceError(
                f"Failed to save strategy '{strategy.strategy_name}': {e}",
                {"strategy_id": strategy.strategy_id, "path": str(path)},
            ) from e
