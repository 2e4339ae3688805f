"""
Screener Engine

Historical stock screening and backtest simulation:
- Stooq flat-file bar ingestion with per-symbol fault isolation
- Ordered screener pipelines ("models") over a symbol universe
- Day-by-day backtest replay without look-ahead bias
- Weighted multi-indicator scoring for ranking symbols
"""

__version__ = "1.0.0"
__author__ = "Screener Engine Team"

from screener_engine.config import Settings, get_settings

__all__ = ["__version__", "Settings", "get_settings"]
