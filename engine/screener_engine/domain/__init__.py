"""
Domain models for the screening engine.

- Bar: one daily OHLCV record
- BarCache: symbol -> ordered list of bars
"""

from screener_engine.domain.bar import Bar, BarCache

__all__ = [
    "Bar",
    "BarCache",
]
