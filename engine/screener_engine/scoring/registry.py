"""
Indicator registry.

Maps indicator types to calculator instances. Calculators hold no state,
so the registry keeps one shared instance per type.
"""

from typing import Any

from screener_engine.errors import ConfigurationError, UnknownIndicatorError
from screener_engine.scoring.calculators import BUILTIN_CALCULATORS, IndicatorCalculator


class IndicatorRegistry:
    """Lookup of indicator calculators by indicator_type."""

    def __init__(self) -> None:
        self._calculators: dict[str, IndicatorCalculator] = {}

    @classmethod
    def with_builtins(cls) -> "IndicatorRegistry":
        registry = cls()
        for calculator_cls in BUILTIN_CALCULATORS.values():
            registry.register(calculator_cls())
        return registry

    def register(self, calculator: IndicatorCalculator, replace: bool = False) -> None:
        """
        Register a calculator under its indicator_type.

        Raises:
            ConfigurationError: If the type is taken and replace is False
        """
        indicator_type = calculator.indicator_type
        if indicator_type in self._calculators and not replace:
            raise ConfigurationError(
                f"Indicator '{indicator_type}' is already registered",
                {"indicator_type": indicator_type},
            )
        self._calculators[indicator_type] = calculator

    def get(self, indicator_type: str) -> IndicatorCalculator:
        """
        Get the calculator for a type.

        Raises:
            UnknownIndicatorError: If indicator_type is not registered
        """
        calculator = self._calculators.get(indicator_type)
        if calculator is None:
            available = ", ".join(self.all_types())
            raise UnknownIndicatorError(
                f"Unknown indicator '{indicator_type}'. Available: {available}",
                {"indicator_type": indicator_type},
            )
        return calculator

    def is_registered(self, indicator_type: str) -> bool:
        return indicator_type in self._calculators

    def all_types(self) -> list[str]:
        return list(self._calculators.keys())

    def all_info(self) -> list[dict[str, Any]]:
        return [calculator.info() for calculator in self._calculators.values()]

    def __len__(self) -> int:
        return len(self._calculators)
