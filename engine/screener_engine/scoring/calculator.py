"""
Score calculator.

Scores symbols against a strategy: every enabled indicator produces a raw
score, and the total is the weight-averaged sum of those scores. Symbols
are independent of each other and may be scored in parallel.
"""

from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor

from screener_engine.domain import Bar
from screener_engine.errors import ScreenerEngineError
from screener_engine.logging import get_logger
from screener_engine.scoring.models import IndicatorConfig, ScoreResult, ScoringStrategy
from screener_engine.scoring.registry import IndicatorRegistry

logger = get_logger(__name__)


class ScoreCalculator:
    """
    Applies scoring strategies to bar series.

    A failing indicator never aborts a batch: the symbol gets an
    error-carrying ScoreResult (total_score None) that still lists the
    indicator scores that did succeed.
    """

    def __init__(self, registry: IndicatorRegistry, max_workers: int = 1) -> None:
        self._registry = registry
        self._max_workers = max(1, max_workers)

    @property
    def registry(self) -> IndicatorRegistry:
        return self._registry

    def calculate_indicator_score(
        self,
        indicator: IndicatorConfig,
        symbol: str,
        bars: Sequence[Bar],
    ) -> float:
        """
        Raw score of one indicator for one symbol.

        Raises:
            UnknownIndicatorError: If the indicator type is not registered
            ConfigurationError: If the indicator parameters are invalid
            InsufficientDataError: If there are too few bars
        """
        calculator = self._registry.get(indicator.indicator_type)
        return calculator.calculate_score(symbol, bars, indicator.parameters)

    def calculate_score_for_symbol(
        self,
        symbol: str,
        bars: Sequence[Bar],
        strategy: ScoringStrategy,
    ) -> ScoreResult:
        scores: dict[str, float] = {}
        errors: list[str] = []

        for indicator in strategy.enabled_indicators:
            try:
                scores[indicator.indicator_type] = self.calculate_indicator_score(
                    indicator, symbol, bars
                )
            except ScreenerEngineError as e:
                errors.append(f"{indicator.label}: {e.message}")
            except Exception as e:
                logger.warning(
                    "Indicator %s failed for %s: %s", indicator.indicator_type, symbol, e
                )
                errors.append(f"{indicator.label}: {type(e).__name__}: {e}")

        if errors:
            return ScoreResult(symbol=symbol, indicator_scores=scores, error="; ".join(errors))

        total_weight = strategy.total_weight
        if total_weight <= 0:
            return ScoreResult(
                symbol=symbol,
                indicator_scores=scores,
                error="Strategy has no enabled indicator with a positive weight",
            )

        weighted = sum(
            scores[indicator.indicator_type] * indicator.weight
            for indicator in strategy.enabled_indicators
        )
        return ScoreResult(
            symbol=symbol,
            total_score=weighted / total_weight,
            indicator_scores=scores,
        )

    def calculate_scores_for_symbols(
        self,
        symbol_data: Mapping[str, Sequence[Bar]],
        strategy: ScoringStrategy,
    ) -> list[ScoreResult]:
        """
        Score every symbol in symbol_data.

        Args:
            symbol_data: Symbol -> bars in ascending date order
            strategy: Strategy to apply

        Returns:
            One result per symbol, in symbol_data order
        """
        symbols = list(symbol_data.keys())
        if self._max_workers == 1 or len(symbols) < 2:
            results = [
                self.calculate_score_for_symbol(s, symbol_data[s], strategy) for s in symbols
            ]
        else:
            with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
                results = list(
                    executor.map(
                        lambda s: self.calculate_score_for_symbol(s, symbol_data[s], strategy),
                        symbols,
                    )
                )

        failed = sum(1 for r in results if r.is_error)
        logger.info(
            "Scored %d symbols with strategy '%s' (%d errors)",
            len(results),
            strategy.strategy_name,
            failed,
        )
        return results


def rank_results(results: Sequence[ScoreResult]) -> list[ScoreResult]:
    """Highest total score first, then by symbol. Error results go last."""
    scored = [r for r in results if r.total_score is not None]
    errored = [r for r in results if r.total_score is None]
    scored.sort(key=lambda r: (-r.total_score, r.symbol))
    errored.sort(key=lambda r: r.symbol)
    return scored + errored
