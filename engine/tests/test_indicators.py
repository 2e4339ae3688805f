"""
Tests for the indicator math library.
"""

import math

import pytest

from screener_engine import indicators


def _nan_count(values: list[float]) -> int:
    return sum(1 for v in values if math.isnan(v))


class TestMovingAverages:
    """Tests for SMA / EMA / WMA."""

    def test_sma_values(self) -> None:
        result = indicators.sma([1.0, 2.0, 3.0, 4.0, 5.0], 3)
        assert _nan_count(result) == 2
        assert result[2:] == pytest.approx([2.0, 3.0, 4.0])

    def test_sma_insufficient_data_is_all_nan(self) -> None:
        result = indicators.sma([1.0, 2.0], 5)
        assert len(result) == 2
        assert _nan_count(result) == 2

    def test_ema_seeded_with_sma(self) -> None:
        result = indicators.ema([2.0, 4.0, 6.0, 8.0], 3)
        assert math.isnan(result[1])
        assert result[2] == pytest.approx(4.0)
        # multiplier 2 / (3 + 1) = 0.5
        assert result[3] == pytest.approx(6.0)

    def test_wma_weights_newest_most(self) -> None:
        result = indicators.wma([1.0, 2.0, 3.0], 3)
        assert result[2] == pytest.approx((1 * 1 + 2 * 2 + 3 * 3) / 6)

    def test_moving_average_dispatch(self) -> None:
        values = [float(v) for v in range(1, 11)]
        assert indicators.moving_average(values, 4, "SMA") == indicators.sma(values, 4)
        assert indicators.moving_average(values, 4, "ema") == indicators.ema(values, 4)

    def test_moving_average_unknown_type(self) -> None:
        with pytest.raises(ValueError):
            indicators.moving_average([1.0, 2.0], 1, "hull")

    @pytest.mark.parametrize("func", [indicators.sma, indicators.ema, indicators.wma])
    def test_non_positive_period_raises(self, func) -> None:
        with pytest.raises(ValueError):
            func([1.0, 2.0, 3.0], 0)


class TestMomentum:
    """Tests for RSI / ROC / momentum."""

    def test_rsi_all_gains_is_100(self) -> None:
        closes = [float(v) for v in range(1, 21)]
        result = indicators.rsi(closes, 14)
        assert _nan_count(result) == 14
        assert result[-1] == pytest.approx(100.0)

    def test_rsi_flat_is_50(self) -> None:
        result = indicators.rsi([10.0] * 20, 14)
        assert result[-1] == pytest.approx(50.0)

    def test_rsi_within_bounds(self) -> None:
        closes = [10, 11, 10.5, 12, 11, 13, 12.5, 12, 14, 13, 15, 14, 13.5, 16, 15, 17]
        values = [v for v in indicators.rsi([float(c) for c in closes], 5) if not math.isnan(v)]
        assert values
        assert all(0 <= v <= 100 for v in values)

    def test_roc_and_momentum(self) -> None:
        values = [100.0, 105.0, 110.0]
        assert indicators.roc(values, 2)[-1] == pytest.approx(10.0)
        assert indicators.momentum(values, 1)[-1] == pytest.approx(5.0)


class TestVolatility:
    """Tests for true range / ATR / standard deviation."""

    def test_true_range_uses_previous_close_gap(self, make_bars) -> None:
        bars = make_bars([10.0, 12.0])
        # Gap up: high 12.12 - previous close 10.0 beats high - low
        assert indicators.true_range(bars[1], bars[0]) == pytest.approx(12.12 - 10.0)
        assert indicators.true_range(bars[0]) == pytest.approx(10.1 - 9.9)

    def test_atr_constant_range(self, make_bars) -> None:
        bars = make_bars([10.0] * 20)
        result = indicators.atr(bars, 14)
        assert _nan_count(result) == 13
        assert result[-1] == pytest.approx(0.2)

    def test_std_dev(self) -> None:
        result = indicators.std_dev([2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0], 8)
        assert result[-1] == pytest.approx(2.0)

    def test_correlation(self) -> None:
        xs = [1.0, 2.0, 3.0, 4.0]
        assert indicators.correlation(xs, [2.0, 4.0, 6.0, 8.0], 4)[-1] == pytest.approx(1.0)
        assert indicators.correlation(xs, [8.0, 6.0, 4.0, 2.0], 4)[-1] == pytest.approx(-1.0)
        assert math.isnan(indicators.correlation(xs, [1.0] * 4, 4)[-1])

    def test_correlation_length_mismatch(self) -> None:
        with pytest.raises(ValueError):
            indicators.correlation([1.0, 2.0], [1.0], 2)


class TestHelpers:
    """Tests for extremes and bar helpers."""

    def test_highest_lowest(self) -> None:
        values = [3.0, 1.0, 4.0, 1.0, 5.0]
        assert indicators.highest(values, 3)[-1] == 5.0
        assert indicators.lowest(values, 3)[-1] == 1.0
        assert indicators.highest_index(values, 3, 3) == 2
        assert indicators.lowest_index(values, 3, 2) == 1
        assert indicators.highest_index(values, 3, 1) == -1

    def test_average_volume(self, make_bars) -> None:
        bars = make_bars([10.0] * 3, volumes=[100.0, 200.0, 300.0])
        assert indicators.average_volume(bars, 2) == pytest.approx(250.0)
        assert math.isnan(indicators.average_volume(bars, 5))

    def test_value_from_bar(self, make_bars) -> None:
        bar = make_bars([10.0])[0]
        assert indicators.value_from_bar(bar, "high") == pytest.approx(10.1)
        assert indicators.value_from_bar(bar, "mid") == pytest.approx(10.0)
        with pytest.raises(ValueError):
            indicators.value_from_bar(bar, "vwap")

    def test_gap_detection(self, make_bars) -> None:
        prev, up = make_bars([10.0, 12.0])
        assert indicators.is_gap_up(up, prev)
        assert not indicators.is_gap_down(up, prev)
        assert indicators.gap_percent(up, prev) > 0

    def test_inside_bar(self, make_bars) -> None:
        outer, inner = make_bars([10.0, 10.0], highs=[11.0, 10.5], lows=[9.0, 9.5])
        assert indicators.is_inside_bar(inner, outer)
        assert indicators.is_outside_bar(outer, inner)

    def test_is_valid(self) -> None:
        assert indicators.is_valid(1.0)
        assert not indicators.is_valid(math.nan)
        assert not indicators.is_valid(math.inf)

    def test_has_sufficient_data(self, make_bars) -> None:
        bars = make_bars([10.0] * 5)
        assert indicators.has_sufficient_data(bars, 4, 5)
        assert not indicators.has_sufficient_data(bars, 3, 5)
        assert not indicators.has_sufficient_data(bars, 5, 1)
