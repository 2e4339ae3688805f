"""
Forward-return statistics for backtest results.

For each symbol a model selected on date D, a hypothetical trade enters at
the close of the last bar on or before D and exits at the close
`holding_period` bars later. Symbols without an exit bar in the price data
are not counted as trades.
"""

import bisect
from collections.abc import Sequence
from datetime import date

from screener_engine.backtest.models import (
    BacktestSession,
    BacktestStatistics,
    DailyBacktestResult,
)
from screener_engine.domain import BarCache
from screener_engine.logging import get_logger

logger = get_logger(__name__)


def trade_returns(
    symbols: Sequence[str],
    start_date: date,
    holding_period: int,
    price_data: BarCache,
) -> list[float]:
    """
    Percent return of each completed hypothetical trade.

    Args:
        symbols: Symbols selected on start_date
        start_date: Screening date (entry at its close)
        holding_period: Bars between entry and exit
        price_data: Full price history (typically the master cache)

    Returns:
        One return per symbol that has both an entry and an exit bar
    """
    if holding_period <= 0:
        raise ValueError(f"holding_period must be positive, got {holding_period}")

    returns = []
    for symbol in symbols:
        bars = price_data.get(symbol) or []
        entry_index = bisect.bisect_right(bars, start_date, key=lambda b: b.timestamp) - 1
        if entry_index < 0:
            continue
        exit_index = entry_index + holding_period
        if exit_index >= len(bars):
            continue
        entry = bars[entry_index].close
        exit_ = bars[exit_index].close
        returns.append((exit_ - entry) / entry * 100)
    return returns


def calculate_win_rate(
    symbols: Sequence[str],
    start_date: date,
    holding_period: int,
    price_data: BarCache,
) -> float:
    """Winning trades as a percentage (0-100). 0 when there are no trades."""
    returns = trade_returns(symbols, start_date, holding_period, price_data)
    if not returns:
        return 0.0
    return sum(1 for r in returns if r > 0) / len(returns) * 100


def calculate_returns(
    symbols: Sequence[str],
    start_date: date,
    holding_period: int,
    price_data: BarCache,
) -> dict[str, float]:
    """Average gain of winners and average loss of losers, in percent."""
    returns = trade_returns(symbols, start_date, holding_period, price_data)
    gains = [r for r in returns if r > 0]
    losses = [r for r in returns if r <= 0]
    return {
        "avg_gain": sum(gains) / len(gains) if gains else 0.0,
        "avg_loss": sum(losses) / len(losses) if losses else 0.0,
    }


def calculate_statistics(
    symbols: Sequence[str],
    start_date: date,
    holding_period: int,
    price_data: BarCache,
) -> BacktestStatistics:
    """All forward statistics for one set of selected symbols."""
    returns = trade_returns(symbols, start_date, holding_period, price_data)
    gains = [r for r in returns if r > 0]
    losses = [r for r in returns if r <= 0]

    return BacktestStatistics(
        win_rate=len(gains) / len(returns) * 100 if returns else 0.0,
        avg_gain=sum(gains) / len(gains) if gains else 0.0,
        avg_loss=sum(losses) / len(losses) if losses else 0.0,
        trade_count=len(returns),
        win_loss_ratio=len(gains) / len(losses) if losses else None,
        holding_period=holding_period,
    )


def annotate_result(
    result: DailyBacktestResult,
    holding_period: int,
    price_data: BarCache,
) -> DailyBacktestResult:
    stats = calculate_statistics(result.symbols, result.date, holding_period, price_data)
    return result.with_statistics(stats)


def annotate_session(
    session: BacktestSession,
    price_data: BarCache,
    holding_period: int = 5,
) -> BacktestSession:
    """
    Copy of the session with statistics on every daily result.

    The original session and its results are left untouched.
    """
    annotated = [annotate_result(r, holding_period, price_data) for r in session.daily_results]
    logger.info(
        "Annotated %d results of session %s (holding period %d)",
        len(annotated),
        session.session_id,
        holding_period,
    )
    return session.model_copy(update={"daily_results": annotated})
