"""
Tests for the backtest runner.
"""

import re
import threading
from collections.abc import Generator
from datetime import date

import pytest

from screener_engine.backtest import (
    BacktestRunner,
    BacktestStatus,
    RunnerState,
    assign_colors_to_models,
    calculate_max_bars_for_models,
)
from screener_engine.cancellation import CancellationToken
from screener_engine.errors import RunnerBusyError
from screener_engine.screeners import ScreenerModel, ScreenerStep

WEEK_START = date(2024, 3, 4)
WEEK_END = date(2024, 3, 8)


@pytest.fixture
def events() -> list[dict]:
    return []


@pytest.fixture
def runner(registry, events) -> Generator[BacktestRunner, None, None]:
    runner = BacktestRunner(registry, progress_callback=events.append, color_seed=7)
    yield runner
    runner.shutdown()


@pytest.fixture
def spike_cache(make_bars):
    """AAA trades 5x its usual volume on 2024-03-06 only."""
    bars = make_bars([50.0] * 60, symbol="AAA.US", volumes=[400_000.0] * 60)
    volumes = [2_000_000.0 if b.timestamp == date(2024, 3, 6) else 400_000.0 for b in bars]
    return {
        "AAA.US": make_bars([50.0] * 60, symbol="AAA.US", volumes=volumes),
        "BBB.US": make_bars([20.0] * 60, symbol="BBB.US", volumes=[100_000.0] * 60),
    }


@pytest.fixture
def spike_model() -> ScreenerModel:
    return ScreenerModel(
        display_name="Spikes", steps=[ScreenerStep(screener_id="volume_spike")]
    )


class TestBacktestScenario:
    """Five-day backtest of a single model."""

    def test_one_result_per_day(self, runner, flat_cache, dollar_volume_model) -> None:
        outcome = runner.run_sync([dollar_volume_model], WEEK_START, WEEK_END, flat_cache)

        assert outcome.is_completed
        session = outcome.session
        assert session.status == BacktestStatus.COMPLETED
        assert len(session.daily_results) == 5
        assert session.all_dates() == [date(2024, 3, d) for d in range(4, 9)]
        assert all(r.symbols == ["AAA.US", "CCC.US"] for r in session.daily_results)
        assert session.trading_days_count == 5
        assert session.processed_days_count == 5

    def test_no_look_ahead(self, runner, spike_cache, spike_model) -> None:
        outcome = runner.run_sync([spike_model], WEEK_START, WEEK_END, spike_cache)

        selected = {r.date: r.symbols for r in outcome.session.daily_results}
        assert selected[date(2024, 3, 5)] == []
        assert selected[date(2024, 3, 6)] == ["AAA.US"]
        assert selected[date(2024, 3, 7)] == []

    def test_results_ordered_by_date_then_model(self, runner, flat_cache) -> None:
        models = [
            ScreenerModel(display_name="A", steps=[ScreenerStep(screener_id="dollar_volume")]),
            ScreenerModel(display_name="B", steps=[ScreenerStep(screener_id="aptr")]),
        ]
        outcome = runner.run_sync(models, WEEK_START, WEEK_END, flat_cache)

        results = outcome.session.daily_results
        assert len(results) == 10
        assert [r.model_name for r in results[:2]] == ["A", "B"]
        assert [r.date for r in results] == sorted(r.date for r in results)

    def test_disabled_models_skipped(self, runner, flat_cache, dollar_volume_model) -> None:
        disabled = ScreenerModel(
            display_name="Off", is_enabled=False, steps=[ScreenerStep(screener_id="aptr")]
        )
        outcome = runner.run_sync([dollar_volume_model, disabled], WEEK_START, WEEK_END, flat_cache)
        assert [m.display_name for m in outcome.session.models] == ["Liquid"]

    def test_universe_restricts_symbols(self, runner, flat_cache, dollar_volume_model) -> None:
        outcome = runner.run_sync(
            [dollar_volume_model], WEEK_START, WEEK_END, flat_cache, universe=["CCC.US"]
        )
        assert all(r.symbols == ["CCC.US"] for r in outcome.session.daily_results)

    def test_duplicate_universe_symbols(self, runner, flat_cache, dollar_volume_model) -> None:
        outcome = runner.run_sync(
            [dollar_volume_model],
            WEEK_START,
            WEEK_END,
            flat_cache,
            universe=["CCC.US", "AAA.US", "CCC.US"],
        )
        first = outcome.session.daily_results[0]
        assert first.symbols == ["CCC.US", "AAA.US"]
        assert first.symbol_count == 2
        assert first.metadata["universe_size"] == 2

    def test_benchmark_attached(self, runner, flat_cache, dollar_volume_model) -> None:
        outcome = runner.run_sync(
            [dollar_volume_model], WEEK_START, WEEK_END, flat_cache, benchmark_symbol="AAA.US"
        )
        session = outcome.session
        assert session.benchmark_symbol == "AAA.US"
        assert len(session.benchmark_bars) == 5
        assert session.benchmark_bar_for_date(date(2024, 3, 6)).close == 50.0
        assert session.benchmark_bar_for_date(date(2024, 3, 9)) is None

    def test_model_colors(self, runner, flat_cache, dollar_volume_model) -> None:
        outcome = runner.run_sync([dollar_volume_model], WEEK_START, WEEK_END, flat_cache)
        color = outcome.session.model_colors[dollar_volume_model.model_id]
        assert re.fullmatch(r"#[0-9a-f]{6}", color)


class TestProgressEvents:
    """Tests for progress reporting."""

    def test_event_sequence(self, runner, flat_cache, dollar_volume_model, events) -> None:
        runner.run_sync([dollar_volume_model], WEEK_START, WEEK_END, flat_cache)

        types = [e["type"] for e in events]
        assert types[0] == "started"
        assert "preparing" in types
        assert types.index("execution_started") < types.index("date_started")
        assert types.count("date_started") == 5
        assert types.count("model_completed") == 5
        assert types.count("date_completed") == 5
        assert types[-1] == "completed"
        assert events[-1]["session"].status == BacktestStatus.COMPLETED
        assert all("ts" in e for e in events)

    def test_progress_monotonic(self, runner, flat_cache, dollar_volume_model, events) -> None:
        runner.run_sync([dollar_volume_model], WEEK_START, WEEK_END, flat_cache)

        progress = [e["progress"] for e in events if e["type"] == "progress"]
        assert progress == sorted(progress)
        assert progress[-1] == pytest.approx(1.0)
        assert runner.progress == pytest.approx(1.0)

    def test_model_completed_payload(
        self, runner, flat_cache, dollar_volume_model, events
    ) -> None:
        runner.run_sync([dollar_volume_model], WEEK_START, WEEK_END, flat_cache)

        first = next(e for e in events if e["type"] == "model_completed")
        assert first["model_name"] == "Liquid"
        assert first["date"] == WEEK_START
        assert first["symbol_count"] == 2

    def test_failing_callback_does_not_abort(
        self, registry, flat_cache, dollar_volume_model
    ) -> None:
        def explode(event: dict) -> None:
            raise RuntimeError("listener bug")

        runner = BacktestRunner(registry, progress_callback=explode)
        try:
            outcome = runner.run_sync([dollar_volume_model], WEEK_START, WEEK_END, flat_cache)
        finally:
            runner.shutdown()
        assert outcome.is_completed


class TestCancellation:
    """Tests for cooperative cancellation."""

    def test_cancel_after_second_date(self, registry, flat_cache, dollar_volume_model) -> None:
        completed_dates = []

        def on_event(event: dict) -> None:
            if event["type"] == "date_completed":
                completed_dates.append(event["date"])
                if len(completed_dates) == 2:
                    runner.cancel()

        runner = BacktestRunner(registry, progress_callback=on_event)
        try:
            # Ten trading days
            outcome = runner.run_sync(
                [dollar_volume_model], date(2024, 2, 26), date(2024, 3, 8), flat_cache
            )
        finally:
            runner.shutdown()

        assert outcome.is_cancelled
        assert outcome.error is None
        assert outcome.session.status == BacktestStatus.CANCELLED
        assert outcome.session.all_dates() == completed_dates
        assert len(outcome.session.daily_results) == 2
        assert runner.last_status == BacktestStatus.CANCELLED

    def test_cancel_mid_date_finishes_date(self, registry, flat_cache) -> None:
        def on_event(event: dict) -> None:
            if event["type"] == "model_completed" and event["model_name"] == "A":
                runner.cancel()

        models = [
            ScreenerModel(display_name="A", steps=[ScreenerStep(screener_id="dollar_volume")]),
            ScreenerModel(display_name="B", steps=[ScreenerStep(screener_id="aptr")]),
        ]
        runner = BacktestRunner(registry, progress_callback=on_event)
        try:
            outcome = runner.run_sync(models, WEEK_START, WEEK_END, flat_cache)
        finally:
            runner.shutdown()

        assert outcome.is_cancelled
        assert [(r.date, r.model_name) for r in outcome.session.daily_results] == [
            (WEEK_START, "A"),
            (WEEK_START, "B"),
        ]

    def test_pre_cancelled_token(self, runner, flat_cache, dollar_volume_model) -> None:
        token = CancellationToken()
        token.cancel()
        outcome = runner.run_sync(
            [dollar_volume_model], WEEK_START, WEEK_END, flat_cache, cancellation_token=token
        )
        assert outcome.is_cancelled
        assert outcome.session.daily_results == []

    def test_token_records_first_request(self) -> None:
        token = CancellationToken()
        assert token.requested_at is None
        assert token.cancel(reason="shutdown")
        assert not token.cancel(reason="again")
        assert token.is_cancelled
        assert token.reason == "shutdown"
        assert token.requested_at is not None

    def test_cancel_when_idle(self, runner) -> None:
        assert not runner.cancel()


class TestFailures:
    """Failed runs report a structured error and no session."""

    def test_inverted_date_range(self, runner, flat_cache, dollar_volume_model, events) -> None:
        outcome = runner.run_sync([dollar_volume_model], WEEK_END, WEEK_START, flat_cache)
        assert outcome.is_failed
        assert outcome.session is None
        assert outcome.error.code == "invalid_date_range"
        assert events[-1]["type"] == "failed"

    def test_no_enabled_models(self, runner, flat_cache) -> None:
        disabled = ScreenerModel(
            display_name="Off", is_enabled=False, steps=[ScreenerStep(screener_id="aptr")]
        )
        outcome = runner.run_sync([disabled], WEEK_START, WEEK_END, flat_cache)
        assert outcome.error.code == "invalid_model"

    def test_unknown_screener(self, runner, flat_cache) -> None:
        model = ScreenerModel(display_name="Bad", steps=[ScreenerStep(screener_id="nope")])
        outcome = runner.run_sync([model], WEEK_START, WEEK_END, flat_cache)
        assert outcome.error.code == "unknown_screener"

    def test_cache_validation_failure(self, runner, flat_cache, spike_model) -> None:
        # volume_spike needs 21 bars; only 7 exist on 2024-01-09
        outcome = runner.run_sync([spike_model], date(2024, 1, 9), date(2024, 1, 12), flat_cache)
        assert outcome.error.code == "cache_validation_failed"
        assert outcome.error.details["min_bars_required"] == 21
        assert outcome.error.details["insufficient_count"] == 3

    def test_weekend_only_range(self, runner, flat_cache, dollar_volume_model) -> None:
        outcome = runner.run_sync(
            [dollar_volume_model], date(2024, 3, 9), date(2024, 3, 10), flat_cache
        )
        assert outcome.error.code == "invalid_date_range"

    def test_runner_reusable_after_failure(
        self, runner, flat_cache, dollar_volume_model
    ) -> None:
        runner.run_sync([dollar_volume_model], WEEK_END, WEEK_START, flat_cache)
        assert runner.state == RunnerState.IDLE
        assert runner.last_status == BacktestStatus.FAILED
        assert runner.run_sync([dollar_volume_model], WEEK_START, WEEK_END, flat_cache).is_completed


class TestRunnerState:
    """Tests for runner lifecycle."""

    def test_busy_runner_rejects_second_run(
        self, registry, flat_cache, dollar_volume_model
    ) -> None:
        entered = threading.Event()
        release = threading.Event()

        def on_event(event: dict) -> None:
            if event["type"] == "started":
                entered.set()
                release.wait(timeout=10)

        runner = BacktestRunner(registry, progress_callback=on_event)
        try:
            future = runner.run([dollar_volume_model], WEEK_START, WEEK_END, flat_cache)
            assert entered.wait(timeout=10)
            assert runner.is_running
            with pytest.raises(RunnerBusyError):
                runner.run([dollar_volume_model], WEEK_START, WEEK_END, flat_cache)
            release.set()
            assert future.result(timeout=10).is_completed
        finally:
            release.set()
            runner.shutdown()

        assert runner.state == RunnerState.IDLE
        assert not runner.is_running

    def test_calculate_max_bars(self, runner, dollar_volume_model, spike_model) -> None:
        assert runner.calculate_max_bars([dollar_volume_model, spike_model]) == 21
        assert calculate_max_bars_for_models([], runner.registry) == 0


class TestModelColors:
    """Tests for assign_colors_to_models."""

    def test_seeded_colors_are_stable_and_distinct(self) -> None:
        models = [
            ScreenerModel(display_name=f"M{i}", steps=[ScreenerStep(screener_id="aptr")])
            for i in range(6)
        ]
        first = assign_colors_to_models(models, seed=42)
        second = assign_colors_to_models(models, seed=42)
        assert first == second
        assert len(set(first.values())) == 6
        assert set(first) == {m.model_id for m in models}

    def test_no_models(self) -> None:
        assert assign_colors_to_models([]) == {}
