"""
Tests for built-in screeners and the screener registry.
"""

import pytest

from screener_engine.errors import ConfigurationError, UnknownScreenerError
from screener_engine.screeners import BaseScreener, ScreenerParameters, ScreenerRegistry
from screener_engine.screeners.builtin import (
    AlignedSMAScreener,
    APTRScreener,
    DollarVolumeScreener,
    MATrendScreener,
    VolumeLiquidityScreener,
    VolumeSpikeScreener,
)


class TestScreenerRegistry:
    """Tests for ScreenerRegistry."""

    def test_builtins_registered(self, registry: ScreenerRegistry) -> None:
        assert len(registry) == 6
        assert registry.all_ids() == [
            "volume_liquidity",
            "dollar_volume",
            "volume_spike",
            "aligned_sma",
            "ma_trend",
            "aptr",
        ]

    def test_create_with_parameters(self, registry: ScreenerRegistry) -> None:
        screener = registry.create("dollar_volume", {"threshold": 1_000})
        assert isinstance(screener, DollarVolumeScreener)
        assert screener.parameters == {"threshold": 1_000.0}

    def test_unknown_screener(self, registry: ScreenerRegistry) -> None:
        with pytest.raises(UnknownScreenerError) as exc:
            registry.create("nope")
        assert exc.value.details["screener_id"] == "nope"

    def test_unknown_parameter_rejected(self, registry: ScreenerRegistry) -> None:
        with pytest.raises(ConfigurationError) as exc:
            registry.create("dollar_volume", {"treshold": 5})
        assert exc.value.details["screener_id"] == "dollar_volume"

    def test_out_of_range_parameter_rejected(self, registry: ScreenerRegistry) -> None:
        with pytest.raises(ConfigurationError):
            registry.create("volume_spike", {"period": 0})

    def test_duplicate_registration(self, registry: ScreenerRegistry) -> None:
        with pytest.raises(ConfigurationError):
            registry.register(DollarVolumeScreener)
        registry.register(DollarVolumeScreener, replace=True)
        assert len(registry) == 6

    def test_register_custom_screener(self) -> None:
        class AlwaysScreener(BaseScreener):
            screener_id = "always"
            display_name = "Always"
            parameters_model = ScreenerParameters

            @property
            def min_bars_required(self) -> int:
                return 1

            def passes(self, symbol, bars) -> bool:
                return True

        registry = ScreenerRegistry()
        registry.register(AlwaysScreener)
        assert registry.is_registered("always")
        assert registry.info("always")["min_bars_required"] == 1

    def test_info(self, registry: ScreenerRegistry) -> None:
        info = registry.info("volume_spike")
        assert info["display_name"] == "Volume Spike"
        assert info["min_bars_required"] == 21
        assert info["default_parameters"] == {"period": 20, "multiplier": 2.0}
        assert len(registry.all_info()) == 6


class TestExecute:
    """Tests for BaseScreener.execute."""

    def test_preserves_candidate_order(self, flat_cache) -> None:
        screener = DollarVolumeScreener({"threshold": 1})
        assert screener.execute(["CCC.US", "AAA.US"], flat_cache) == ["CCC.US", "AAA.US"]

    def test_rejects_short_and_missing_series(self, flat_cache, make_bars) -> None:
        cache = {**flat_cache, "NEW.US": make_bars([10.0] * 5, symbol="NEW.US")}
        screener = VolumeSpikeScreener({"multiplier": 0.1})
        assert screener.execute(["NEW.US", "GONE.US", "AAA.US"], cache) == ["AAA.US"]


class TestLiquidityScreeners:
    """Tests for volume based screeners."""

    def test_dollar_volume(self, flat_cache) -> None:
        screener = DollarVolumeScreener({"threshold": 10_000_000})
        assert screener.execute(list(flat_cache), flat_cache) == ["AAA.US", "CCC.US"]

    def test_dollar_volume_threshold_inclusive(self, make_bars) -> None:
        bars = make_bars([10.0], volumes=[1_000_000.0])
        assert DollarVolumeScreener({"threshold": 10_000_000}).passes("TEST.US", bars)

    def test_volume_liquidity(self, make_bars) -> None:
        bars = make_bars([10.0] * 5, volumes=[400_000, 600_000, 500_000, 500_000, 500_000])
        assert VolumeLiquidityScreener({"threshold": 4_999_999}).passes("TEST.US", bars)
        assert not VolumeLiquidityScreener({"threshold": 5_000_000}).passes("TEST.US", bars)

    def test_volume_spike_excludes_last_bar_from_baseline(self, make_bars) -> None:
        bars = make_bars([10.0] * 21, volumes=[100.0] * 20 + [200.0])
        assert VolumeSpikeScreener().passes("TEST.US", bars)
        bars = make_bars([10.0] * 21, volumes=[100.0] * 20 + [199.0])
        assert not VolumeSpikeScreener().passes("TEST.US", bars)

    def test_volume_spike_zero_baseline(self, make_bars) -> None:
        bars = make_bars([10.0] * 21, volumes=[0.0] * 20 + [500.0])
        assert not VolumeSpikeScreener().passes("TEST.US", bars)


class TestTrendScreeners:
    """Tests for moving average screeners."""

    def test_aligned_sma_uptrend(self, make_bars) -> None:
        bars = make_bars([float(10 + i) for i in range(60)])
        screener = AlignedSMAScreener({"periods": [5, 10, 20], "require_price_above": True})
        assert screener.min_bars_required == 20
        assert screener.passes("TEST.US", bars)

    def test_aligned_sma_downtrend_fails(self, make_bars) -> None:
        bars = make_bars([float(100 - i) for i in range(60)])
        assert not AlignedSMAScreener({"periods": [5, 10, 20]}).passes("TEST.US", bars)

    def test_aligned_sma_periods_must_increase(self) -> None:
        with pytest.raises(ConfigurationError):
            AlignedSMAScreener({"periods": [20, 10]})
        with pytest.raises(ConfigurationError):
            AlignedSMAScreener({"periods": [10]})

    def test_ma_trend_direction(self, make_bars) -> None:
        rising = make_bars([float(10 + i) for i in range(30)])
        falling = make_bars([float(50 - i) for i in range(30)])
        up = MATrendScreener({"period": 10, "lookback_bars": 3})
        down = MATrendScreener({"period": 10, "lookback_bars": 3, "direction": "down"})

        assert up.min_bars_required == 13
        assert up.passes("TEST.US", rising)
        assert not up.passes("TEST.US", falling)
        assert down.passes("TEST.US", falling)

    def test_ma_trend_flat_fails(self, make_bars) -> None:
        bars = make_bars([10.0] * 30)
        assert not MATrendScreener({"period": 10, "ma_type": "ema"}).passes("TEST.US", bars)


class TestAPTRScreener:
    """Tests for the ATR percent band screener."""

    def test_within_band(self, make_bars) -> None:
        # Constant 2% daily range
        bars = make_bars([10.0] * 20)
        assert APTRScreener({"min_pct": 1.5, "max_pct": 2.5}).passes("TEST.US", bars)
        assert not APTRScreener({"min_pct": 3.0, "max_pct": 5.0}).passes("TEST.US", bars)

    def test_bounds_must_be_ordered(self) -> None:
        with pytest.raises(ConfigurationError):
            APTRScreener({"min_pct": 5.0, "max_pct": 1.0})
