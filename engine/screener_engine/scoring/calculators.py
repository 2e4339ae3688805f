"""
Indicator calculators.

An indicator calculator turns a symbol's bar series into one bounded score.
Calculators are stateless, so a single instance may score any number of
symbols from any number of threads.

Built-ins (score range):
- DollarVolume (-100..100): last bar dollar volume relative to a threshold
- AscendingLows (-100..100): how many recent lows rose bar over bar
- BearTrap (-100..100): last low undercut the previous low
- PriceVsMA (-100..100): share of price points above/below a moving average
- UNR (0..100): undercut-and-rally of a moving average, decaying with age
- VolumeSpike (-50..100): last volume relative to its preceding average
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, ClassVar, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from screener_engine import indicators
from screener_engine.domain import Bar
from screener_engine.errors import ConfigurationError, InsufficientDataError


class IndicatorParameters(BaseModel):
    """Base class for typed indicator parameters. Unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class IndicatorCalculator(ABC):
    """
    Abstract base class for indicator calculators.

    Subclasses declare identity and score range as class attributes and
    implement required_bars() and score() against their typed parameters.
    calculate_score() takes care of parameter parsing and the minimum bar
    check, so score() always sees enough bars.
    """

    indicator_type: ClassVar[str]
    display_name: ClassVar[str]
    description: ClassVar[str] = ""
    score_range: ClassVar[tuple[float, float]] = (-100.0, 100.0)
    parameters_model: ClassVar[type[IndicatorParameters]] = IndicatorParameters

    def default_parameters(self) -> dict[str, Any]:
        return self.parameters_model().model_dump()

    def validate_parameters(self, parameters: dict[str, Any] | None = None) -> IndicatorParameters:
        """
        Parse parameters into the typed model.

        Raises:
            ConfigurationError: If any parameter is unknown or out of range
        """
        try:
            return self.parameters_model.model_validate(parameters or {})
        except ValidationError as e:
            problems = [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            ]
            raise ConfigurationError(
                f"Invalid parameters for indicator '{self.indicator_type}': {'; '.join(problems)}",
                {"indicator_type": self.indicator_type, "errors": problems},
            ) from e

    def minimum_bars_required(self, parameters: dict[str, Any] | None = None) -> int:
        return self.required_bars(self.validate_parameters(parameters))

    def calculate_score(
        self,
        symbol: str,
        bars: Sequence[Bar],
        parameters: dict[str, Any] | None = None,
    ) -> float:
        """
        Score one symbol.

        Args:
            symbol: Symbol being scored (used in error details)
            bars: Bars in ascending date order
            parameters: Overrides for default_parameters()

        Returns:
            Score within score_range

        Raises:
            ConfigurationError: If parameters are invalid
            InsufficientDataError: If bars is shorter than the minimum required
        """
        params = self.validate_parameters(parameters)
        required = self.required_bars(params)
        if len(bars) < required:
            raise InsufficientDataError(symbol, required, len(bars))
        low, high = self.score_range
        return min(high, max(low, float(self.score(bars, params))))

    @abstractmethod
    def required_bars(self, params: Any) -> int:
        """Bars needed for the given parameters."""

    @abstractmethod
    def score(self, bars: Sequence[Bar], params: Any) -> float:
        """Score the series. Only called with at least required_bars(params) bars."""

    def info(self) -> dict[str, Any]:
        return {
            "indicator_type": self.indicator_type,
            "display_name": self.display_name,
            "description": self.description,
            "score_range": list(self.score_range),
            "minimum_bars_required": self.minimum_bars_required(),
            "default_parameters": self.default_parameters(),
        }


# =============================================================================
# Volume
# =============================================================================


class DollarVolumeParameters(IndicatorParameters):
    threshold: float = Field(default=10_000_000.0, gt=0, description="Dollar volume baseline")


class DollarVolumeCalculator(IndicatorCalculator):
    """
    Last bar close * volume as a multiple of the threshold.

    5x or more scores 100, 3x 75, 2x 50, 1x 25, anything below the
    threshold -100.
    """

    indicator_type = "DollarVolume"
    display_name = "Dollar Volume"
    description = "Last bar dollar volume relative to a threshold"
    parameters_model = DollarVolumeParameters

    def required_bars(self, params: DollarVolumeParameters) -> int:
        return 1

    def score(self, bars: Sequence[Bar], params: DollarVolumeParameters) -> float:
        ratio = indicators.dollar_volume(bars[-1]) / params.threshold
        if ratio >= 5:
            return 100.0
        if ratio >= 3:
            return 75.0
        if ratio >= 2:
            return 50.0
        if ratio >= 1:
            return 25.0
        return -100.0


class VolumeSpikeParameters(IndicatorParameters):
    volume_ma_period: int = Field(
        default=20,
        ge=1,
        le=250,
        validation_alias=AliasChoices("volume_ma_period", "volumeMAPeriod"),
    )
    base_coefficient: float = Field(
        default=1.5,
        gt=0,
        validation_alias=AliasChoices("base_coefficient", "baseCoefficient"),
        description="Smallest multiple of average volume counted as a spike",
    )


class VolumeSpikeCalculator(IndicatorCalculator):
    """
    Last volume over the average volume of the preceding bars.

    With coefficient c the tiers are: >= 2c scores 100, >= 5c/3 85,
    >= 4c/3 70, >= c 50, >= 1 25. Below half the average scores -50,
    anything else 0. With the default c = 1.5 that is 3.0 / 2.5 / 2.0 /
    1.5 times the average.
    """

    indicator_type = "VolumeSpike"
    display_name = "Volume Spike"
    description = "Last bar volume relative to its recent average"
    score_range = (-50.0, 100.0)
    parameters_model = VolumeSpikeParameters

    def required_bars(self, params: VolumeSpikeParameters) -> int:
        return params.volume_ma_period + 1

    def score(self, bars: Sequence[Bar], params: VolumeSpikeParameters) -> float:
        baseline = indicators.average_volume(bars[:-1], params.volume_ma_period)
        if not indicators.is_valid(baseline) or baseline <= 0:
            return 0.0
        ratio = bars[-1].volume / baseline
        c = params.base_coefficient
        if ratio >= 2 * c:
            return 100.0
        if ratio >= 5 * c / 3:
            return 85.0
        if ratio >= 4 * c / 3:
            return 70.0
        if ratio >= c:
            return 50.0
        if ratio >= 1:
            return 25.0
        if ratio < 0.5:
            return -50.0
        return 0.0


# =============================================================================
# Price Action
# =============================================================================


class AscendingLowsParameters(IndicatorParameters):
    lookback_days: int = Field(
        default=5,
        ge=1,
        le=100,
        validation_alias=AliasChoices("lookback_days", "lookbackDays"),
    )


class AscendingLowsCalculator(IndicatorCalculator):
    """
    Count of the last `lookback_days` bars whose low is above the prior low.

    All of them rising scores 100, then 75 / 50 / 25 for each one missing
    (as a share of the lookback: 80%, 60%, 40%). Fewer scores -100.
    """

    indicator_type = "AscendingLows"
    display_name = "Ascending Lows"
    description = "Consecutive higher lows over a lookback window"
    parameters_model = AscendingLowsParameters

    def required_bars(self, params: AscendingLowsParameters) -> int:
        return params.lookback_days + 1

    def score(self, bars: Sequence[Bar], params: AscendingLowsParameters) -> float:
        window = bars[-(params.lookback_days + 1) :]
        rising = sum(1 for prev, cur in zip(window, window[1:]) if cur.low > prev.low)
        share = rising / params.lookback_days
        if share >= 1:
            return 100.0
        if share >= 0.8:
            return 75.0
        if share >= 0.6:
            return 50.0
        if share >= 0.4:
            return 25.0
        return -100.0


class BearTrapCalculator(IndicatorCalculator):
    """100 when the last low undercuts the previous low, -100 otherwise."""

    indicator_type = "BearTrap"
    display_name = "Bear Trap"
    description = "Last bar low below the previous bar low"

    def required_bars(self, params: IndicatorParameters) -> int:
        return 2

    def score(self, bars: Sequence[Bar], params: IndicatorParameters) -> float:
        return 100.0 if bars[-1].low < bars[-2].low else -100.0


# =============================================================================
# Moving Average
# =============================================================================

PricePoint = Literal["open", "high", "low", "close"]


class PriceVsMAParameters(IndicatorParameters):
    ma_type: Literal["sma", "ema", "wma"] = Field(
        default="ema", validation_alias=AliasChoices("ma_type", "maType")
    )
    ma_period: int = Field(
        default=10, ge=1, le=500, validation_alias=AliasChoices("ma_period", "maPeriod")
    )
    price_points: list[PricePoint] = Field(
        default_factory=lambda: ["close"],
        validation_alias=AliasChoices("price_points", "pricePoints"),
    )
    condition: Literal["above", "below"] = "above"

    @field_validator("ma_type", mode="before")
    @classmethod
    def normalize_ma_type(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v

    @field_validator("price_points")
    @classmethod
    def validate_price_points(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("at least one price point is required")
        if len(set(v)) != len(v):
            raise ValueError("price points must be unique")
        return v


class PriceVsMACalculator(IndicatorCalculator):
    """
    Share of the chosen price points of the last bar on the required side
    of the moving average.

    All of them scores 100, >= 75% 75, >= 50% 50, any 25, none -100.
    """

    indicator_type = "PriceVsMA"
    display_name = "Price vs MA"
    description = "Last bar prices above or below a moving average"
    parameters_model = PriceVsMAParameters

    def required_bars(self, params: PriceVsMAParameters) -> int:
        return params.ma_period

    def score(self, bars: Sequence[Bar], params: PriceVsMAParameters) -> float:
        ma = indicators.moving_average(
            indicators.values(bars, "close"), params.ma_period, params.ma_type
        )[-1]
        last = bars[-1]
        prices = [indicators.value_from_bar(last, point) for point in params.price_points]
        if params.condition == "above":
            hits = sum(1 for p in prices if p > ma)
        else:
            hits = sum(1 for p in prices if p < ma)

        share = hits / len(prices)
        if share >= 1:
            return 100.0
        if share >= 0.75:
            return 75.0
        if share >= 0.5:
            return 50.0
        if share > 0:
            return 25.0
        return -100.0


class UNRParameters(IndicatorParameters):
    ma_type: Literal["sma", "ema", "wma"] = Field(
        default="ema", validation_alias=AliasChoices("ma_type", "maType")
    )
    ma_period: int = Field(
        default=10, ge=1, le=500, validation_alias=AliasChoices("ma_period", "maPeriod")
    )
    lookback_days: int = Field(
        default=5, ge=1, le=100, validation_alias=AliasChoices("lookback_days", "lookbackDays")
    )
    same_bar_weight: float = Field(
        default=1.0,
        ge=0,
        le=1,
        validation_alias=AliasChoices("same_bar_weight", "sameBarWeight"),
    )
    next_bar_weight: float = Field(
        default=0.7,
        ge=0,
        le=1,
        validation_alias=AliasChoices("next_bar_weight", "nextBarWeight"),
    )

    @field_validator("ma_type", mode="before")
    @classmethod
    def normalize_ma_type(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v


# Score lost per bar of age
UNR_DECAY_PER_DAY = 0.2


class UNRCalculator(IndicatorCalculator):
    """
    Undercut and rally: price dips to the moving average and closes back
    above it.

    Same-bar pattern: low <= MA and close >= MA on one bar. Next-bar
    pattern: low <= MA on one bar, close >= MA on the following bar. Each
    occurrence within the lookback scores 100 * pattern weight, reduced by
    20% per bar of age. The best occurrence wins; no occurrence scores 0.
    """

    indicator_type = "UNR"
    display_name = "Undercut & Rally"
    description = "Recent dip to a moving average followed by a close above it"
    score_range = (0.0, 100.0)
    parameters_model = UNRParameters

    def required_bars(self, params: UNRParameters) -> int:
        return params.ma_period + params.lookback_days

    def score(self, bars: Sequence[Bar], params: UNRParameters) -> float:
        ma = indicators.moving_average(
            indicators.values(bars, "close"), params.ma_period, params.ma_type
        )
        last = len(bars) - 1
        best = 0.0

        for days_ago in range(params.lookback_days):
            decay = max(0.0, 1.0 - UNR_DECAY_PER_DAY * days_ago)
            if decay == 0:
                break
            i = last - days_ago
            bar = bars[i]
            if bar.close < ma[i]:
                continue
            if bar.low <= ma[i]:
                best = max(best, 100.0 * params.same_bar_weight * decay)
            if bars[i - 1].low <= ma[i - 1]:
                best = max(best, 100.0 * params.next_bar_weight * decay)

        return best


BUILTIN_CALCULATORS: dict[str, type[IndicatorCalculator]] = {
    cls.indicator_type: cls
    for cls in (
        DollarVolumeCalculator,
        AscendingLowsCalculator,
        BearTrapCalculator,
        PriceVsMACalculator,
        UNRCalculator,
        VolumeSpikeCalculator,
    )
}
