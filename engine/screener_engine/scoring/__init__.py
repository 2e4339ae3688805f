"""
Scoring engine.

Ranks symbols with a weighted sum of pluggable indicator calculators.
"""

from screener_engine.scoring.calculator import ScoreCalculator, rank_results
from screener_engine.scoring.calculators import (
    BUILTIN_CALCULATORS,
    AscendingLowsCalculator,
    BearTrapCalculator,
    DollarVolumeCalculator,
    IndicatorCalculator,
    IndicatorParameters,
    PriceVsMACalculator,
    UNRCalculator,
    VolumeSpikeCalculator,
)
from screener_engine.scoring.models import (
    DataRequirements,
    IndicatorConfig,
    ScoreResult,
    ScoringStrategy,
    ValidationResult,
)
from screener_engine.scoring.registry import IndicatorRegistry
from screener_engine.scoring.requirements import DataRequirementCalculator, validate_bars
from screener_engine.scoring.strategy_manager import (
    DEFAULT_STRATEGY_ID,
    StrategyManager,
    builtin_strategies,
)

__all__ = [
    "BUILTIN_CALCULATORS",
    "DEFAULT_STRATEGY_ID",
    "AscendingLowsCalculator",
    "BearTrapCalculator",
    "DataRequirementCalculator",
    "DataRequirements",
    "DollarVolumeCalculator",
    "IndicatorCalculator",
    "IndicatorConfig",
    "IndicatorParameters",
    "IndicatorRegistry",
    "PriceVsMACalculator",
    "ScoreCalculator",
    "ScoreResult",
    "ScoringStrategy",
    "StrategyManager",
    "UNRCalculator",
    "ValidationResult",
    "VolumeSpikeCalculator",
    "builtin_strategies",
    "rank_results",
    "validate_bars",
]
