"""
Data ingestion models.

Defines contracts for load results and per-symbol load issues.
"""

from datetime import date
from enum import Enum

from pydantic import BaseModel, Field

from screener_engine.domain import Bar


class IssueKind(str, Enum):
    """Reasons a symbol failed to load cleanly."""

    MISSING_FILE = "missing_file"
    UNREADABLE = "unreadable"
    EMPTY = "empty"
    INSUFFICIENT_HISTORY = "insufficient_history"
    ROWS_DROPPED = "rows_dropped"


class SymbolLoadIssue(BaseModel):
    """A problem encountered while loading one symbol."""

    symbol: str
    kind: IssueKind
    message: str
    dropped_rows: int = Field(default=0, ge=0, description="Malformed rows skipped")

    @property
    def is_fatal(self) -> bool:
        """True if the symbol ended up with no usable bars."""
        return self.kind in (IssueKind.MISSING_FILE, IssueKind.UNREADABLE, IssueKind.EMPTY)


class LoadResult(BaseModel):
    """
    Outcome of a bulk load.

    Every requested symbol has a key in `cache`; symbols that failed
    to load map to an empty list and carry a fatal issue.
    """

    cache: dict[str, list[Bar]] = Field(default_factory=dict)
    issues: list[SymbolLoadIssue] = Field(default_factory=list)
    requested: int = Field(default=0, ge=0)
    from_date: date | None = None
    to_date: date | None = None
    duration_s: float = Field(default=0.0, ge=0)

    @property
    def loaded_symbols(self) -> list[str]:
        return [s for s, bars in self.cache.items() if bars]

    @property
    def failed_symbols(self) -> list[str]:
        return [issue.symbol for issue in self.issues if issue.is_fatal]

    @property
    def has_issues(self) -> bool:
        return bool(self.issues)

    @property
    def total_bars(self) -> int:
        return sum(len(bars) for bars in self.cache.values())

    def issues_for(self, symbol: str) -> list[SymbolLoadIssue]:
        """All issues recorded for one symbol."""
        return [issue for issue in self.issues if issue.symbol == symbol]
