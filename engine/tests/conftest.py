"""
Pytest configuration and shared fixtures.
"""

from collections.abc import Callable, Sequence
from datetime import date, timedelta
from pathlib import Path

import pytest

from screener_engine.config import get_settings
from screener_engine.domain import Bar, BarCache
from screener_engine.screeners import ScreenerModel, ScreenerRegistry, ScreenerStep

BarFactory = Callable[..., list[Bar]]


def weekdays(start: date, count: int) -> list[date]:
    """`count` consecutive weekdays starting on or after start."""
    days = []
    day = start
    while len(days) < count:
        if day.weekday() < 5:
            days.append(day)
        day += timedelta(days=1)
    return days


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep local SCREENER_* variables out of tests."""
    for var in (
        "SCREENER_ENV",
        "SCREENER_DATA_DIR",
        "SCREENER_STOOQ_DIR",
        "SCREENER_LOG_LEVEL",
        "SCREENER_SELECTED_EXCHANGES",
        "SCREENER_SCORE_MAX_WORKERS",
    ):
        monkeypatch.delenv(var, raising=False)
    get_settings.cache_clear()


@pytest.fixture
def make_bars() -> BarFactory:
    """
    Build a daily series on consecutive weekdays.

    Opens equal closes; highs and lows default to 1% around the close.
    """

    def _make(
        closes: Sequence[float],
        symbol: str = "TEST.US",
        start: date = date(2024, 1, 1),
        volumes: Sequence[float] | None = None,
        lows: Sequence[float] | None = None,
        highs: Sequence[float] | None = None,
    ) -> list[Bar]:
        days = weekdays(start, len(closes))
        bars = []
        for i, close in enumerate(closes):
            bars.append(
                Bar(
                    symbol=symbol,
                    timestamp=days[i],
                    open=close,
                    high=highs[i] if highs is not None else close * 1.01,
                    low=lows[i] if lows is not None else close * 0.99,
                    close=close,
                    volume=volumes[i] if volumes is not None else 1_000_000.0,
                )
            )
        return bars

    return _make


@pytest.fixture
def flat_cache(make_bars: BarFactory) -> BarCache:
    """Three symbols with 60 bars from 2024-01-01 at constant prices."""
    return {
        "AAA.US": make_bars([50.0] * 60, symbol="AAA.US", volumes=[400_000.0] * 60),
        "BBB.US": make_bars([20.0] * 60, symbol="BBB.US", volumes=[100_000.0] * 60),
        "CCC.US": make_bars([10.0] * 60, symbol="CCC.US", volumes=[2_000_000.0] * 60),
    }


@pytest.fixture
def registry() -> ScreenerRegistry:
    return ScreenerRegistry.with_builtins()


@pytest.fixture
def dollar_volume_model() -> ScreenerModel:
    return ScreenerModel(
        display_name="Liquid",
        steps=[ScreenerStep(screener_id="dollar_volume", parameters={"threshold": 10_000_000})],
    )


@pytest.fixture
def stooq_root(tmp_path: Path) -> Path:
    root = tmp_path / "stooq"
    root.mkdir()
    return root


@pytest.fixture
def write_stooq_file(stooq_root: Path) -> Callable[..., Path]:
    """
    Write a Stooq daily file under <root>/<exchange>/.

    Rows are (date, open, high, low, close, volume) tuples or raw strings.
    """

    def _write(
        symbol: str,
        rows: Sequence[tuple | str],
        exchange: str = "us",
        header: bool = True,
        subdir: str = "",
    ) -> Path:
        directory = stooq_root / exchange / subdir if subdir else stooq_root / exchange
        directory.mkdir(parents=True, exist_ok=True)
        lines = []
        if header:
            lines.append("<TICKER>,<PER>,<DATE>,<TIME>,<OPEN>,<HIGH>,<LOW>,<CLOSE>,<VOL>,<OPENINT>")
        for row in rows:
            if isinstance(row, str):
                lines.append(row)
                continue
            day, o, h, low, c, v = row
            lines.append(
                f"{symbol.upper()},D,{day.strftime('%Y%m%d')},000000,{o},{h},{low},{c},{v},0"
            )
        path = directory / f"{symbol.lower()}.txt"
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write
