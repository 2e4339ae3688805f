"""
Point-in-time views of a bar cache.

Slicing a master cache at a reference date yields the cache exactly as it
would have looked on that date: no bar dated after the reference date is
ever returned. Slices are new dicts and lists that share the underlying
(immutable) Bar objects with the master cache.
"""

import bisect
from datetime import date

from pydantic import BaseModel, Field

from screener_engine.domain import Bar, BarCache


def _bar_date(bar: Bar) -> date:
    return bar.timestamp


def _upper_bound(bars: list[Bar], upto: date) -> int:
    """Index one past the last bar dated <= upto."""
    return bisect.bisect_right(bars, upto, key=_bar_date)


def _lower_bound(bars: list[Bar], from_date: date) -> int:
    """Index of the first bar dated >= from_date."""
    return bisect.bisect_left(bars, from_date, key=_bar_date)


# =============================================================================
# Slicing
# =============================================================================


def slice_up_to(cache: BarCache, upto: date) -> BarCache:
    """
    Truncate every series at `upto` (inclusive).

    Symbols with no bars on or before `upto` are kept with an empty list.
    """
    return {symbol: bars[: _upper_bound(bars, upto)] for symbol, bars in cache.items()}


def slice_range(cache: BarCache, from_date: date, to_date: date) -> BarCache:
    """Bars dated within [from_date, to_date] for every symbol."""
    if to_date < from_date:
        return {symbol: [] for symbol in cache}
    return {
        symbol: bars[_lower_bound(bars, from_date) : _upper_bound(bars, to_date)]
        for symbol, bars in cache.items()
    }


# =============================================================================
# Statistics
# =============================================================================


def symbol_count_at_date(cache: BarCache, reference: date) -> int:
    """Number of symbols with at least one bar on or before `reference`."""
    return sum(1 for bars in cache.values() if bars and bars[0].timestamp <= reference)


def date_range_for_cache(cache: BarCache) -> tuple[date, date] | None:
    """Earliest and latest bar date across the cache, None if it holds no bars."""
    firsts = [bars[0].timestamp for bars in cache.values() if bars]
    if not firsts:
        return None
    lasts = [bars[-1].timestamp for bars in cache.values() if bars]
    return min(firsts), max(lasts)


def total_bar_count(cache: BarCache) -> int:
    return sum(len(bars) for bars in cache.values())


# =============================================================================
# Validation
# =============================================================================


class CacheValidationReport(BaseModel):
    """Outcome of checking a cache before a backtest."""

    valid: bool
    reason: str = ""
    symbols_checked: int = 0
    min_bars_required: int = 0
    insufficient: dict[str, int] = Field(
        default_factory=dict, description="Symbol -> bars available at the start date"
    )
    empty_symbols: list[str] = Field(default_factory=list)


def cache_validation_report(
    cache: BarCache,
    start_date: date,
    end_date: date,
    min_bars_required: int,
) -> CacheValidationReport:
    """
    Check the cache can support a backtest over [start_date, end_date].

    Every symbol that has data must have at least `min_bars_required`
    bars dated on or before start_date. Symbols with no bars at all were
    already reported at load time; they are listed but do not fail the
    check. A cache with no bars fails.
    """
    if end_date < start_date:
        return CacheValidationReport(
            valid=False,
            reason=f"End date {end_date} is before start date {start_date}",
            min_bars_required=min_bars_required,
        )

    empty = [symbol for symbol, bars in cache.items() if not bars]
    populated = {symbol: bars for symbol, bars in cache.items() if bars}
    if not populated:
        return CacheValidationReport(
            valid=False,
            reason="Cache contains no bars",
            min_bars_required=min_bars_required,
            empty_symbols=empty,
        )

    insufficient = {}
    for symbol, bars in populated.items():
        available = _upper_bound(bars, start_date)
        if available < min_bars_required:
            insufficient[symbol] = available

    reason = ""
    if insufficient:
        reason = (
            f"{len(insufficient)} of {len(populated)} symbols have fewer than "
            f"{min_bars_required} bars on {start_date}"
        )

    return CacheValidationReport(
        valid=not insufficient,
        reason=reason,
        symbols_checked=len(populated),
        min_bars_required=min_bars_required,
        insufficient=insufficient,
        empty_symbols=empty,
    )


def validate_cache(
    cache: BarCache,
    start_date: date,
    end_date: date,
    min_bars_required: int,
) -> bool:
    """True if the cache has enough history for a backtest over the range."""
    return cache_validation_report(cache, start_date, end_date, min_bars_required).valid


class CacheSlicer:
    """Namespace grouping the slicing and validation functions."""

    slice_up_to = staticmethod(slice_up_to)
    slice_range = staticmethod(slice_range)
    symbol_count_at_date = staticmethod(symbol_count_at_date)
    date_range_for_cache = staticmethod(date_range_for_cache)
    total_bar_count = staticmethod(total_bar_count)
    validate_cache = staticmethod(validate_cache)
    cache_validation_report = staticmethod(cache_validation_report)
