"""
Data requirements for scoring strategies.

Works out how much history a strategy needs and checks whether a bar
series provides it, so callers can load enough data up front.
"""

import math
from collections.abc import Sequence
from datetime import date, timedelta

from screener_engine.domain import Bar
from screener_engine.scoring.models import (
    DataRequirements,
    IndicatorConfig,
    ScoringStrategy,
    ValidationResult,
)
from screener_engine.scoring.registry import IndicatorRegistry


class DataRequirementCalculator:
    """Derives DataRequirements from a strategy's enabled indicators."""

    def __init__(self, registry: IndicatorRegistry) -> None:
        self._registry = registry

    def minimum_bars_for_indicator(self, indicator: IndicatorConfig) -> int:
        calculator = self._registry.get(indicator.indicator_type)
        return calculator.minimum_bars_required(indicator.parameters)

    def calculate_requirements(
        self,
        strategy: ScoringStrategy,
        as_of: date | None = None,
    ) -> DataRequirements:
        """
        Requirements of a strategy.

        Args:
            strategy: Strategy to inspect
            as_of: Scoring date. When given, earliest_date estimates the
                first calendar date that must be loaded (5 trading days
                per 7 calendar days).

        Raises:
            UnknownIndicatorError: If an enabled indicator type is not registered
            ConfigurationError: If indicator parameters are invalid
        """
        minimum = max(
            (self.minimum_bars_for_indicator(i) for i in strategy.enabled_indicators),
            default=0,
        )
        earliest = None
        if as_of is not None and minimum > 0:
            earliest = as_of - timedelta(days=math.ceil(minimum * 7 / 5))
        return DataRequirements(minimum_bars=minimum, earliest_date=earliest)


def validate_bars(bars: Sequence[Bar], requirements: DataRequirements) -> ValidationResult:
    """
    Check a bar series against requirements.

    Bars must be daily and strictly ascending by date; there must be at
    least minimum_bars of them.
    """
    if requirements.timeframe != "daily":
        return ValidationResult.invalid(
            f"Unsupported timeframe '{requirements.timeframe}'",
            has_compatible_timeframe=False,
        )

    for prev, cur in zip(bars, bars[1:]):
        if cur.timestamp <= prev.timestamp:
            return ValidationResult.invalid(
                f"Bars out of order at {cur.timestamp.isoformat()}",
                has_compatible_timeframe=False,
            )

    missing = requirements.minimum_bars - len(bars)
    if missing > 0:
        return ValidationResult.invalid(
            f"{len(bars)} bars available, {requirements.minimum_bars} required",
            has_sufficient_bars=False,
            missing_bars=missing,
        )
    return ValidationResult.valid()
