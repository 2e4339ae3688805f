"""
Bar (OHLCV) domain model.

Represents a single daily price bar. Bars are immutable so that a point-in-time
slice can share them with the master cache without copying.
"""

from datetime import date

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class Bar(BaseModel):
    """
    A single daily OHLCV bar.

    Frozen once created. Intraday granularity is not represented.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str = Field(default="", description="Exchange-qualified symbol, e.g. AAPL.US")
    timestamp: date = Field(..., description="Trading date of the bar")

    open: float = Field(..., gt=0, description="Opening price")
    high: float = Field(..., gt=0, description="Highest price")
    low: float = Field(..., gt=0, description="Lowest price")
    close: float = Field(..., gt=0, description="Closing price")
    volume: float = Field(default=0.0, ge=0, description="Traded volume")
    open_interest: float = Field(default=0.0, ge=0, description="Open interest (futures)")

    @field_validator("high")
    @classmethod
    def high_gte_open(cls, v: float, info: ValidationInfo) -> float:
        """Validate high >= open."""
        data = info.data
        if "open" in data and v < data["open"]:
            raise ValueError("high must be >= open")
        return v

    @field_validator("low")
    @classmethod
    def low_lte_open_high(cls, v: float, info: ValidationInfo) -> float:
        """Validate low <= open and low <= high."""
        data = info.data
        if "open" in data and v > data["open"]:
            raise ValueError("low must be <= open")
        if "high" in data and v > data["high"]:
            raise ValueError("low must be <= high")
        return v

    @field_validator("close")
    @classmethod
    def close_within_range(cls, v: float, info: ValidationInfo) -> float:
        """Validate low <= close <= high."""
        data = info.data
        if "high" in data and v > data["high"]:
            raise ValueError("close must be <= high")
        if "low" in data and v < data["low"]:
            raise ValueError("close must be >= low")
        return v

    @property
    def typical(self) -> float:
        """Typical price (HLC average)."""
        return (self.high + self.low + self.close) / 3

    @property
    def mid(self) -> float:
        """Mid price (HL average)."""
        return (self.high + self.low) / 2

    @property
    def range(self) -> float:
        return self.high - self.low

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def upper_shadow(self) -> float:
        return self.high - max(self.open, self.close)

    @property
    def lower_shadow(self) -> float:
        return min(self.open, self.close) - self.low

    @property
    def dollar_volume(self) -> float:
        """Close price times volume."""
        return self.close * self.volume

    @property
    def is_green(self) -> bool:
        return self.close > self.open

    @property
    def is_red(self) -> bool:
        return self.close < self.open

    def __hash__(self) -> int:
        return hash((self.symbol, self.timestamp))


# symbol -> bars ordered ascending by date, no duplicate dates
BarCache = dict[str, list[Bar]]
