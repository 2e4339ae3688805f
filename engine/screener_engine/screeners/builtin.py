"""
Built-in screeners.

Every screener evaluates the most recent bar of the (sliced) series:
- volume_liquidity: average dollar volume above a threshold
- dollar_volume: last bar close * volume above a threshold
- volume_spike: last volume a multiple of its recent average
- aligned_sma: fast > medium > slow simple moving averages
- ma_trend: moving average rising (or falling) for N bars
- aptr: average true range as % of price within a band
"""

from collections.abc import Sequence
from typing import Literal

from pydantic import Field, field_validator, model_validator

from screener_engine import indicators
from screener_engine.domain import Bar
from screener_engine.screeners.base import BaseScreener, ScreenerParameters

# =============================================================================
# Liquidity
# =============================================================================


class VolumeLiquidityParameters(ScreenerParameters):
    period: int = Field(default=5, ge=1, le=250, description="Volume averaging window")
    threshold: float = Field(
        default=5_000_000.0, ge=0, description="Minimum average volume * close"
    )


class VolumeLiquidityScreener(BaseScreener):
    """Average volume over `period` bars times last close must exceed threshold."""

    screener_id = "volume_liquidity"
    display_name = "Volume Liquidity"
    description = "Average daily volume times last close above a dollar threshold"
    parameters_model = VolumeLiquidityParameters
    params: VolumeLiquidityParameters

    @property
    def min_bars_required(self) -> int:
        return self.params.period

    def passes(self, symbol: str, bars: Sequence[Bar]) -> bool:
        avg_volume = indicators.average_volume(bars, self.params.period)
        return avg_volume * bars[-1].close > self.params.threshold


class DollarVolumeParameters(ScreenerParameters):
    threshold: float = Field(
        default=10_000_000.0, ge=0, description="Minimum close * volume on the last bar"
    )


class DollarVolumeScreener(BaseScreener):
    """Last bar dollar volume at or above threshold."""

    screener_id = "dollar_volume"
    display_name = "Dollar Volume"
    description = "Last bar close times volume at or above a dollar threshold"
    parameters_model = DollarVolumeParameters
    params: DollarVolumeParameters

    @property
    def min_bars_required(self) -> int:
        return 1

    def passes(self, symbol: str, bars: Sequence[Bar]) -> bool:
        return indicators.dollar_volume(bars[-1]) >= self.params.threshold


class VolumeSpikeParameters(ScreenerParameters):
    period: int = Field(default=20, ge=1, le=250, description="Bars in the volume average")
    multiplier: float = Field(default=2.0, gt=0, description="Required multiple of average")


class VolumeSpikeScreener(BaseScreener):
    """
    Last volume at least `multiplier` times the average of the preceding bars.

    The average excludes the last bar so the spike does not inflate its
    own baseline.
    """

    screener_id = "volume_spike"
    display_name = "Volume Spike"
    description = "Last bar volume a multiple of the preceding average volume"
    parameters_model = VolumeSpikeParameters
    params: VolumeSpikeParameters

    @property
    def min_bars_required(self) -> int:
        return self.params.period + 1

    def passes(self, symbol: str, bars: Sequence[Bar]) -> bool:
        baseline = indicators.average_volume(bars[:-1], self.params.period)
        if not indicators.is_valid(baseline) or baseline <= 0:
            return False
        return bars[-1].volume >= self.params.multiplier * baseline


# =============================================================================
# Trend
# =============================================================================


class AlignedSMAParameters(ScreenerParameters):
    periods: list[int] = Field(
        default_factory=lambda: [10, 20, 50],
        description="SMA periods, fastest first",
    )
    require_price_above: bool = Field(
        default=False, description="Also require close above the fastest SMA"
    )

    @field_validator("periods")
    @classmethod
    def periods_ascending(cls, v: list[int]) -> list[int]:
        """Need at least two strictly increasing positive periods."""
        if len(v) < 2:
            raise ValueError("at least two periods are required")
        if any(p <= 0 for p in v):
            raise ValueError("periods must be positive")
        if any(b <= a for a, b in zip(v, v[1:], strict=False)):
            raise ValueError("periods must be strictly increasing")
        return v


class AlignedSMAScreener(BaseScreener):
    """SMAs stacked in order: SMA(fast) > SMA(medium) > SMA(slow)."""

    screener_id = "aligned_sma"
    display_name = "Aligned SMA"
    description = "Simple moving averages stacked fastest above slowest"
    parameters_model = AlignedSMAParameters
    params: AlignedSMAParameters

    @property
    def min_bars_required(self) -> int:
        return max(self.params.periods)

    def passes(self, symbol: str, bars: Sequence[Bar]) -> bool:
        closes = indicators.values(bars, "close")
        latest = [indicators.last_valid(indicators.sma(closes, p)) for p in self.params.periods]
        if not all(indicators.is_valid(v) for v in latest):
            return False
        if any(slow >= fast for fast, slow in zip(latest, latest[1:], strict=False)):
            return False
        if self.params.require_price_above and closes[-1] <= latest[0]:
            return False
        return True


class MATrendParameters(ScreenerParameters):
    period: int = Field(default=50, ge=1, le=500)
    direction: Literal["up", "down"] = "up"
    ma_type: Literal["sma", "ema"] = "sma"
    lookback_bars: int = Field(default=3, ge=1, le=100, description="Bars the slope must hold")


class MATrendScreener(BaseScreener):
    """Moving average strictly rising (or falling) on each of the last N bars."""

    screener_id = "ma_trend"
    display_name = "Moving Average Trend"
    description = "Moving average rising or falling over the last bars"
    parameters_model = MATrendParameters
    params: MATrendParameters

    @property
    def min_bars_required(self) -> int:
        return self.params.period + self.params.lookback_bars

    def passes(self, symbol: str, bars: Sequence[Bar]) -> bool:
        closes = indicators.values(bars, "close")
        ma = indicators.moving_average(closes, self.params.period, self.params.ma_type)
        window = ma[-(self.params.lookback_bars + 1) :]
        if not all(indicators.is_valid(v) for v in window):
            return False

        pairs = zip(window, window[1:], strict=False)
        if self.params.direction == "up":
            return all(b > a for a, b in pairs)
        return all(b < a for a, b in pairs)


# =============================================================================
# Volatility
# =============================================================================


class APTRParameters(ScreenerParameters):
    period: int = Field(default=14, ge=1, le=250)
    min_pct: float = Field(default=0.0, ge=0, description="Lower bound of ATR % of close")
    max_pct: float = Field(default=100.0, ge=0, description="Upper bound of ATR % of close")

    @model_validator(mode="after")
    def bounds_ordered(self) -> "APTRParameters":
        if self.min_pct > self.max_pct:
            raise ValueError("min_pct must be <= max_pct")
        return self


class APTRScreener(BaseScreener):
    """Average True Range as a percentage of close within [min_pct, max_pct]."""

    screener_id = "aptr"
    display_name = "Average Percent True Range"
    description = "ATR as a percentage of price within a band"
    parameters_model = APTRParameters
    params: APTRParameters

    @property
    def min_bars_required(self) -> int:
        return self.params.period + 1

    def passes(self, symbol: str, bars: Sequence[Bar]) -> bool:
        atr = indicators.last_valid(indicators.atr(bars, self.params.period))
        if not indicators.is_valid(atr):
            return False
        aptr = atr / bars[-1].close * 100
        return self.params.min_pct <= aptr <= self.params.max_pct


BUILTIN_SCREENERS: dict[str, type[BaseScreener]] = {
    "volume_liquidity": VolumeLiquidityScreener,
    "dollar_volume": DollarVolumeScreener,
    "volume_spike": VolumeSpikeScreener,
    "aligned_sma": AlignedSMAScreener,
    "ma_trend": MATrendScreener,
    "aptr": APTRScreener,
}
