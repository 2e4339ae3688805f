"""
Technical indicators for screening and scoring.

All functions are pure and deterministic - same inputs always produce same outputs.
Series functions return a list the same length as the input. Positions without
enough history hold NaN; insufficient data never raises. A non-positive period
is a caller error and raises ValueError.
"""

import math
from collections.abc import Sequence

from screener_engine.domain import Bar

NAN = math.nan

BAR_VALUE_KEYS = ("open", "high", "low", "close", "volume", "typical", "range", "mid")


def _check_period(period: int) -> None:
    if period <= 0:
        raise ValueError(f"period must be positive, got {period}")


def is_valid(value: float) -> bool:
    """True if value is a real number (not NaN / inf)."""
    return value is not None and math.isfinite(value)


def last_valid(values: Sequence[float]) -> float:
    """Last element of a series, or NaN if the series is empty."""
    if not values:
        return NAN
    return values[-1]


# =============================================================================
# Bar Helpers
# =============================================================================


def value_from_bar(bar: Bar, key: str) -> float:
    """
    Extract a value from a bar by key.

    Args:
        bar: Source bar
        key: One of open/high/low/close/volume/typical/range/mid

    Returns:
        The requested value
    """
    if key not in BAR_VALUE_KEYS:
        raise ValueError(f"Unknown bar value key '{key}'")
    return float(getattr(bar, key))


def values(bars: Sequence[Bar], key: str = "close") -> list[float]:
    """Extract one value per bar."""
    return [value_from_bar(b, key) for b in bars]


def has_sufficient_data(bars: Sequence[Bar], index: int, required_bars: int) -> bool:
    """Check that `required_bars` bars exist up to and including index."""
    return 0 <= index < len(bars) and index + 1 >= required_bars


def dollar_volume(bar: Bar) -> float:
    return bar.close * bar.volume


def average_volume(bars: Sequence[Bar], period: int) -> float:
    """Average volume of the last `period` bars, NaN if not enough bars."""
    _check_period(period)
    if len(bars) < period:
        return NAN
    return sum(b.volume for b in bars[-period:]) / period


def is_inside_bar(current: Bar, previous: Bar) -> bool:
    return current.high <= previous.high and current.low >= previous.low


def is_outside_bar(current: Bar, previous: Bar) -> bool:
    return current.high > previous.high and current.low < previous.low


def is_gap_up(current: Bar, previous: Bar) -> bool:
    return current.low >= previous.high


def is_gap_down(current: Bar, previous: Bar) -> bool:
    return current.high <= previous.low


def gap_percent(current: Bar, previous: Bar) -> float:
    """Opening gap versus previous close, in percent."""
    return (current.open - previous.close) / previous.close * 100


# =============================================================================
# Moving Averages
# =============================================================================


def sma(values: Sequence[float], period: int) -> list[float]:
    """
    Calculate Simple Moving Average.

    Args:
        values: Input series
        period: SMA period

    Returns:
        SMA values, NaN for the first period-1 positions
    """
    _check_period(period)
    result = [NAN] * len(values)
    if len(values) < period:
        return result

    window_sum = sum(values[:period])
    result[period - 1] = window_sum / period

    for i in range(period, len(values)):
        window_sum = window_sum - values[i - period] + values[i]
        result[i] = window_sum / period

    return result


def ema(values: Sequence[float], period: int) -> list[float]:
    """
    Calculate Exponential Moving Average.

    Seeded with the SMA of the first `period` values.

    Args:
        values: Input series
        period: EMA period

    Returns:
        EMA values, NaN for the first period-1 positions
    """
    _check_period(period)
    result = [NAN] * len(values)
    if len(values) < period:
        return result

    multiplier = 2.0 / (period + 1)
    result[period - 1] = sum(values[:period]) / period

    for i in range(period, len(values)):
        result[i] = (values[i] - result[i - 1]) * multiplier + result[i - 1]

    return result


def wma(values: Sequence[float], period: int) -> list[float]:
    """
    Calculate linearly Weighted Moving Average (newest value weighted `period`).
    """
    _check_period(period)
    result = [NAN] * len(values)
    if len(values) < period:
        return result

    denominator = period * (period + 1) / 2
    for i in range(period - 1, len(values)):
        window = values[i - period + 1 : i + 1]
        result[i] = sum(v * (w + 1) for w, v in enumerate(window)) / denominator

    return result


def moving_average(values: Sequence[float], period: int, ma_type: str = "sma") -> list[float]:
    """Dispatch to sma/ema/wma by name (case-insensitive)."""
    kind = ma_type.lower()
    if kind == "sma":
        return sma(values, period)
    if kind == "ema":
        return ema(values, period)
    if kind == "wma":
        return wma(values, period)
    raise ValueError(f"Unknown moving average type '{ma_type}'")


# =============================================================================
# Momentum
# =============================================================================


def rsi(closes: Sequence[float], period: int = 14) -> list[float]:
    """
    Calculate Relative Strength Index (Wilder smoothing).

    Args:
        closes: Close prices
        period: RSI period (default 14)

    Returns:
        RSI values (0-100), NaN for the first `period` positions
    """
    _check_period(period)
    result = [NAN] * len(closes)
    if len(closes) < period + 1:
        return result

    gains = [0.0] * len(closes)
    losses = [0.0] * len(closes)
    for i in range(1, len(closes)):
        change = closes[i] - closes[i - 1]
        if change > 0:
            gains[i] = change
        else:
            losses[i] = -change

    avg_gain = sum(gains[1 : period + 1]) / period
    avg_loss = sum(losses[1 : period + 1]) / period
    result[period] = _rsi_value(avg_gain, avg_loss)

    for i in range(period + 1, len(closes)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        result[i] = _rsi_value(avg_gain, avg_loss)

    return result


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0 if avg_gain > 0 else 50.0
    rs = avg_gain / avg_loss
    return 100 - (100 / (1 + rs))


def roc(values: Sequence[float], period: int) -> list[float]:
    """Rate of change in percent versus the value `period` positions back."""
    _check_period(period)
    result = [NAN] * len(values)
    for i in range(period, len(values)):
        base = values[i - period]
        if base != 0:
            result[i] = (values[i] - base) / base * 100
    return result


def momentum(values: Sequence[float], period: int) -> list[float]:
    """Difference versus the value `period` positions back."""
    _check_period(period)
    result = [NAN] * len(values)
    for i in range(period, len(values)):
        result[i] = values[i] - values[i - period]
    return result


# =============================================================================
# Volatility
# =============================================================================


def true_range(current: Bar, previous: Bar | None = None) -> float:
    """
    True Range of a bar.

    Falls back to high - low when there is no previous bar.
    """
    if previous is None:
        return current.high - current.low
    return max(
        current.high - current.low,
        abs(current.high - previous.close),
        abs(current.low - previous.close),
    )


def true_ranges(bars: Sequence[Bar]) -> list[float]:
    """True Range for every bar in the series."""
    return [true_range(bar, bars[i - 1] if i > 0 else None) for i, bar in enumerate(bars)]


def atr(bars: Sequence[Bar], period: int = 14) -> list[float]:
    """
    Calculate Average True Range (Wilder smoothing).

    Args:
        bars: Bars ordered oldest first
        period: ATR period (default 14)

    Returns:
        ATR values, NaN for the first period-1 positions
    """
    _check_period(period)
    trs = true_ranges(bars)
    result = [NAN] * len(trs)
    if len(trs) < period:
        return result

    result[period - 1] = sum(trs[:period]) / period
    for i in range(period, len(trs)):
        result[i] = (result[i - 1] * (period - 1) + trs[i]) / period

    return result


def std_dev(values: Sequence[float], period: int) -> list[float]:
    """Rolling population standard deviation."""
    _check_period(period)
    result = [NAN] * len(values)
    for i in range(period - 1, len(values)):
        window = values[i - period + 1 : i + 1]
        mean = sum(window) / period
        variance = sum((x - mean) ** 2 for x in window) / period
        result[i] = math.sqrt(variance)
    return result


def correlation(series1: Sequence[float], series2: Sequence[float], period: int) -> list[float]:
    """
    Rolling Pearson correlation of two equally long series.

    Windows where either series is flat yield NaN.
    """
    _check_period(period)
    if len(series1) != len(series2):
        raise ValueError("correlation requires series of equal length")

    result = [NAN] * len(series1)
    for i in range(period - 1, len(series1)):
        xs = series1[i - period + 1 : i + 1]
        ys = series2[i - period + 1 : i + 1]
        mean_x = sum(xs) / period
        mean_y = sum(ys) / period
        cov = sum((x - mean_x) * (y - mean_y) for x, y in zip(xs, ys, strict=True))
        var_x = sum((x - mean_x) ** 2 for x in xs)
        var_y = sum((y - mean_y) ** 2 for y in ys)
        if var_x > 0 and var_y > 0:
            result[i] = cov / math.sqrt(var_x * var_y)
    return result


# =============================================================================
# High / Low Helpers
# =============================================================================


def highest(values: Sequence[float], period: int) -> list[float]:
    """Rolling maximum over `period` values."""
    _check_period(period)
    result = [NAN] * len(values)
    for i in range(period - 1, len(values)):
        result[i] = max(values[i - period + 1 : i + 1])
    return result


def lowest(values: Sequence[float], period: int) -> list[float]:
    """Rolling minimum over `period` values."""
    _check_period(period)
    result = [NAN] * len(values)
    for i in range(period - 1, len(values)):
        result[i] = min(values[i - period + 1 : i + 1])
    return result


def highest_index(values: Sequence[float], period: int, index: int) -> int:
    """Index of the highest value in the window ending at index, -1 if out of range."""
    _check_period(period)
    if index < period - 1 or index >= len(values):
        return -1
    start = index - period + 1
    window = values[start : index + 1]
    return start + max(range(len(window)), key=window.__getitem__)


def lowest_index(values: Sequence[float], period: int, index: int) -> int:
    """Index of the lowest value in the window ending at index, -1 if out of range."""
    _check_period(period)
    if index < period - 1 or index >= len(values):
        return -1
    start = index - period + 1
    window = values[start : index + 1]
    return start + min(range(len(window)), key=window.__getitem__)
