"""
Historical bar data ingestion.

Provides:
- Stooq flat-file database scanning and parsing
- Parallel per-symbol loading with issue reporting
- Date-range and extended-lookback loading for backtests
"""

from screener_engine.data.models import IssueKind, LoadResult, SymbolLoadIssue
from screener_engine.data.stooq_store import StooqDataStore

__all__ = [
    "IssueKind",
    "LoadResult",
    "StooqDataStore",
    "SymbolLoadIssue",
]
