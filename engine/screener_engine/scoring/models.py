"""
Scoring data models.

Defines contracts for scoring strategies, indicator configurations, score
results and data requirements.
"""

from datetime import UTC, date, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(UTC)


# =============================================================================
# Strategy Models
# =============================================================================


class IndicatorConfig(BaseModel):
    """One weighted indicator column in a strategy."""

    indicator_type: str = Field(..., min_length=1, description="e.g. DollarVolume")
    display_name: str = Field(default="", description="Column title")
    weight: float = Field(default=10.0, ge=0, le=100)
    parameters: dict[str, Any] = Field(default_factory=dict)
    is_enabled: bool = True

    @property
    def label(self) -> str:
        return self.display_name or self.indicator_type


class ScoringStrategy(BaseModel):
    """A named set of weighted indicators."""

    strategy_id: str = Field(default_factory=lambda: str(uuid4()))
    strategy_name: str = Field(..., min_length=1)
    indicators: list[IndicatorConfig] = Field(default_factory=list)
    is_builtin: bool = False
    date_created: datetime = Field(default_factory=_now)
    date_modified: datetime = Field(default_factory=_now)

    @property
    def enabled_indicators(self) -> list[IndicatorConfig]:
        return [i for i in self.indicators if i.is_enabled]

    @property
    def total_weight(self) -> float:
        """Sum of weights of enabled indicators."""
        return sum(i.weight for i in self.enabled_indicators)

    def add_indicator(self, indicator: IndicatorConfig) -> None:
        self.indicators.append(indicator)

    def remove_indicator(self, index: int) -> IndicatorConfig:
        return self.indicators.pop(index)


# =============================================================================
# Result Models
# =============================================================================


class ScoreResult(BaseModel):
    """
    Score of one symbol under one strategy.

    total_score is None whenever any enabled indicator failed; the scores
    that did succeed are kept in indicator_scores.
    """

    symbol: str
    total_score: float | None = None
    indicator_scores: dict[str, float] = Field(
        default_factory=dict, description="indicator_type -> raw score"
    )
    calculated_at: datetime = Field(default_factory=_now)
    error: str | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def score_for(self, indicator_type: str) -> float | None:
        return self.indicator_scores.get(indicator_type)


class DataRequirements(BaseModel):
    """Minimum data a strategy needs per symbol."""

    minimum_bars: int = Field(default=0, ge=0)
    timeframe: str = "daily"
    needs_fundamentals: bool = False
    earliest_date: date | None = None


class ValidationResult(BaseModel):
    """Whether a bar series satisfies a set of DataRequirements."""

    is_valid: bool
    has_sufficient_bars: bool = True
    has_compatible_timeframe: bool = True
    reason: str = ""
    missing_bars: int = Field(default=0, ge=0)

    @classmethod
    def valid(cls) -> "ValidationResult":
        return cls(is_valid=True)

    @classmethod
    def invalid(cls, reason: str, **kwargs: Any) -> "ValidationResult":
        return cls(is_valid=False, reason=reason, **kwargs)
