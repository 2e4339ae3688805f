"""
Screener interface.

Defines the contract for screeners: single filtering units that take a
candidate list and a bar cache and return the passing subset.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, ValidationError

from screener_engine.domain import Bar, BarCache
from screener_engine.errors import ConfigurationError


class ScreenerParameters(BaseModel):
    """
    Base class for typed screener parameters.

    Unknown keys are rejected so a misspelled parameter never falls back
    silently to its default.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)


class BaseScreener(ABC):
    """
    Abstract base class for screeners.

    Screeners are stateless and deterministic - the same candidates and
    cache always produce the same result. Subclasses declare their
    identity as class attributes and their parameters as a
    ScreenerParameters model.
    """

    screener_id: ClassVar[str]
    display_name: ClassVar[str]
    description: ClassVar[str] = ""
    parameters_model: ClassVar[type[ScreenerParameters]] = ScreenerParameters

    def __init__(self, parameters: dict[str, Any] | None = None) -> None:
        """
        Initialize screener.

        Args:
            parameters: Overrides for default_parameters()

        Raises:
            ConfigurationError: If parameters are invalid
        """
        try:
            self.params = self.parameters_model.model_validate(parameters or {})
        except ValidationError as e:
            problems = [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            ]
            raise ConfigurationError(
                f"Invalid parameters for screener '{self.screener_id}': {'; '.join(problems)}",
                {"screener_id": self.screener_id, "errors": problems},
            ) from e

    @classmethod
    def default_parameters(cls) -> dict[str, Any]:
        """Default parameter values."""
        return cls.parameters_model().model_dump()

    @property
    def parameters(self) -> dict[str, Any]:
        """Effective parameter values."""
        return self.params.model_dump()

    @property
    @abstractmethod
    def min_bars_required(self) -> int:
        """Bars a symbol needs before it can pass. Depends on parameters."""

    @abstractmethod
    def passes(self, symbol: str, bars: Sequence[Bar]) -> bool:
        """
        Evaluate the condition on the most recent bar.

        Only called with at least min_bars_required bars.
        """

    def execute(self, candidates: Sequence[str], cache: BarCache) -> list[str]:
        """
        Filter candidates.

        Args:
            candidates: Symbols to evaluate
            cache: Bar cache (already sliced to the evaluation date)

        Returns:
            Passing symbols, in candidate order. Symbols without enough
            bars are rejected.
        """
        required = self.min_bars_required
        passed = []
        for symbol in candidates:
            bars = cache.get(symbol)
            if not bars or len(bars) < required:
                continue
            if self.passes(symbol, bars):
                passed.append(symbol)
        return passed

    @classmethod
    def info(cls) -> dict[str, Any]:
        """Descriptive metadata using default parameters."""
        return {
            "screener_id": cls.screener_id,
            "display_name": cls.display_name,
            "description": cls.description,
            "min_bars_required": cls().min_bars_required,
            "default_parameters": cls.default_parameters(),
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.parameters})"
