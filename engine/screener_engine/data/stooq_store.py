"""
Stooq flat-file bar store.

Directory layout:
{stooq_dir}/
    {exchange}/
        ... any nesting ...
            {symbol}.txt     # e.g. aapl.us.txt

Each file is a CSV with rows
    TICKER,PER,DATE,TIME,OPEN,HIGH,LOW,CLOSE,VOL,OPENINT
and an optional <TICKER>,... header line. DATE is YYYYMMDD.

Source files are never modified.
"""

import bisect
import math
import threading
import time
from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from datetime import date, timedelta
from pathlib import Path

import pandas as pd

from screener_engine.data.models import IssueKind, LoadResult, SymbolLoadIssue
from screener_engine.domain import Bar
from screener_engine.errors import DataError, InvalidDateRangeError, SymbolDataError
from screener_engine.logging import get_logger

logger = get_logger(__name__)

STOOQ_COLUMNS = (
    "ticker",
    "period",
    "date",
    "time",
    "open",
    "high",
    "low",
    "close",
    "volume",
    "open_interest",
)
PRICE_COLUMNS = ["open", "high", "low", "close"]
NUMERIC_COLUMNS = [*PRICE_COLUMNS, "volume", "open_interest"]


def parse_stooq_frame(
    frame: pd.DataFrame, symbol: str, max_bars: int = 0
) -> tuple[list[Bar], int]:
    """
    Convert raw Stooq rows into bars.

    Args:
        frame: Raw rows as strings, columns named per STOOQ_COLUMNS
        symbol: Symbol assigned to every bar
        max_bars: Keep only the last N bars (0 = all)

    Returns:
        Tuple of (bars ascending by date, number of rows dropped as invalid)
    """
    if frame.empty:
        return [], 0

    # Header lines look like <TICKER>,<PER>,...
    frame = frame[~frame["ticker"].fillna("").astype(str).str.strip().str.startswith("<")]
    total_rows = len(frame)
    if total_rows == 0:
        return [], 0

    clean = pd.DataFrame(
        {col: pd.to_numeric(frame[col], errors="coerce") for col in NUMERIC_COLUMNS}
    )
    clean["timestamp"] = pd.to_datetime(
        frame["date"].astype(str).str.strip(), format="%Y%m%d", errors="coerce"
    )
    clean["volume"] = clean["volume"].fillna(0.0)
    clean["open_interest"] = clean["open_interest"].fillna(0.0)

    valid = clean["timestamp"].notna() & clean[PRICE_COLUMNS].notna().all(axis=1)
    valid &= ~clean[NUMERIC_COLUMNS].isin([math.inf, -math.inf]).any(axis=1)
    valid &= (clean[PRICE_COLUMNS] > 0).all(axis=1)
    valid &= (clean["volume"] >= 0) & (clean["open_interest"] >= 0)
    valid &= clean["high"] >= clean[["open", "close"]].max(axis=1)
    valid &= clean["low"] <= clean[["open", "close"]].min(axis=1)

    clean = clean[valid]
    dropped = total_rows - len(clean)

    clean = clean.drop_duplicates(subset="timestamp", keep="last").sort_values("timestamp")
    if max_bars > 0:
        clean = clean.tail(max_bars)

    # Rows were validated column-wise above
    bars = [
        Bar.model_construct(
            symbol=symbol,
            timestamp=row.timestamp.date(),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
            open_interest=float(row.open_interest),
        )
        for row in clean.itertuples(index=False)
    ]
    return bars, dropped


class StooqDataStore:
    """
    Read-only access to a Stooq flat-file database.

    The symbol index is built lazily by scan() and can be rebuilt at any time.
    Bulk loads parse files in a thread pool; each symbol's series is written
    into the result once its parse completes.
    """

    def __init__(
        self,
        root_directory: Path | None = None,
        selected_exchanges: Iterable[str] | None = None,
        max_workers: int = 8,
        safety_margin_days: int = 30,
    ) -> None:
        """
        Initialize store.

        Args:
            root_directory: Stooq database root
            selected_exchanges: Exchange subdirectories to scan (None/empty = all)
            max_workers: Threads used for parallel parsing
            safety_margin_days: Extra calendar days for extended loads
        """
        self._root = Path(root_directory) if root_directory is not None else None
        self._exchanges = [e.lower() for e in selected_exchanges or []]
        self.max_workers = max(1, max_workers)
        self.safety_margin_days = safety_margin_days

        self._lock = threading.Lock()
        self._index: dict[str, Path] = {}
        self._symbol_exchange: dict[str, str] = {}
        self._async_executor: ThreadPoolExecutor | None = None

    @property
    def root_directory(self) -> Path | None:
        return self._root

    @property
    def selected_exchanges(self) -> list[str]:
        return list(self._exchanges)

    # =========================================================================
    # Scanning
    # =========================================================================

    def scan(self, root_directory: Path | None = None) -> list[str]:
        """
        Build the symbol index from the directory tree.

        Args:
            root_directory: New root; the current root is used when omitted

        Returns:
            Sorted list of discovered symbols (e.g. AAPL.US)
        """
        if root_directory is not None:
            self._root = Path(root_directory)
        if self._root is None:
            raise DataError("No Stooq root directory configured")
        if not self._root.is_dir():
            raise DataError(
                f"Stooq root directory not found: {self._root}",
                {"root": str(self._root)},
            )

        index: dict[str, Path] = {}
        symbol_exchange: dict[str, str] = {}

        for exchange_dir in sorted(self._root.iterdir()):
            if not exchange_dir.is_dir():
                continue
            exchange = exchange_dir.name.lower()
            if self._exchanges and exchange not in self._exchanges:
                continue

            for path in sorted(exchange_dir.rglob("*.txt")):
                if not path.is_file():
                    continue
                symbol = path.stem.upper()
                if symbol in index:
                    logger.debug("Duplicate file for %s ignored: %s", symbol, path)
                    continue
                index[symbol] = path
                symbol_exchange[symbol] = exchange

        with self._lock:
            self._index = index
            self._symbol_exchange = symbol_exchange

        logger.info(
            "Scanned %s: %d symbols across %d exchanges",
            self._root,
            len(index),
            len(set(symbol_exchange.values())),
        )
        return sorted(index)

    def available_symbols(self) -> list[str]:
        """Symbols found by the last scan, sorted."""
        with self._lock:
            return sorted(self._index)

    def symbol_count(self) -> int:
        with self._lock:
            return len(self._index)

    def symbols_for_exchange(self, exchange: str) -> list[str]:
        """
        Symbols under an exchange directory or carrying that exchange suffix.

        Args:
            exchange: Exchange name, case-insensitive (e.g. "us", "nasdaq")
        """
        wanted = exchange.lower()
        with self._lock:
            return sorted(
                symbol
                for symbol, scanned in self._symbol_exchange.items()
                if scanned == wanted or self.exchange_from_symbol(symbol) == wanted
            )

    @staticmethod
    def exchange_from_symbol(symbol: str) -> str:
        """
        Extract exchange suffix from a symbol.

        "AAPL.US" -> "us". Symbols without a suffix map to "".
        """
        if "." not in symbol:
            return ""
        return symbol.rsplit(".", 1)[1].lower()

    def file_path_for_symbol(self, symbol: str) -> Path | None:
        """
        Resolve the data file for a symbol.

        Uses the scan index when available, else <root>/<exchange>/<symbol>.txt.
        Returns None when no root is configured.
        """
        key = symbol.upper()
        with self._lock:
            indexed = self._index.get(key)
        if indexed is not None:
            return indexed
        if self._root is None:
            return None
        return self._root / self.exchange_from_symbol(key) / f"{key.lower()}.txt"

    # =========================================================================
    # Parsing
    # =========================================================================

    def parse_file(self, path: Path, symbol: str | None = None, max_bars: int = 0) -> list[Bar]:
        """
        Parse one Stooq file.

        Args:
            path: File to parse
            symbol: Symbol assigned to bars (defaults to upper-cased file stem)
            max_bars: Keep only the last N bars (0 = all)

        Returns:
            Bars ascending by date

        Raises:
            SymbolDataError: If the file is missing or unreadable
        """
        bars, _ = self._parse_with_stats(Path(path), (symbol or Path(path).stem).upper(), max_bars)
        return bars

    def _parse_with_stats(self, path: Path, symbol: str, max_bars: int) -> tuple[list[Bar], int]:
        if not path.is_file():
            raise SymbolDataError(symbol, f"No data file for {symbol} at {path}")

        try:
            frame = pd.read_csv(
                path,
                header=None,
                names=list(STOOQ_COLUMNS),
                dtype=str,
                skipinitialspace=True,
                skip_blank_lines=True,
                on_bad_lines="skip",
            )
        except pd.errors.EmptyDataError:
            return [], 0
        except (OSError, UnicodeDecodeError, pd.errors.ParserError) as e:
            raise SymbolDataError(symbol, f"Unreadable data file for {symbol}: {e}") from e

        return parse_stooq_frame(frame, symbol, max_bars)

    def _load_symbol(
        self,
        symbol: str,
        max_bars: int = 0,
        min_bars: int = 0,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> tuple[list[Bar], list[SymbolLoadIssue]]:
        """Load one symbol, converting failures into issues."""
        issues: list[SymbolLoadIssue] = []
        path = self.file_path_for_symbol(symbol)
        if path is None:
            issues.append(
                SymbolLoadIssue(
                    symbol=symbol,
                    kind=IssueKind.MISSING_FILE,
                    message="No Stooq root directory configured",
                )
            )
            return [], issues

        try:
            bars, dropped = self._parse_with_stats(path, symbol, max_bars)
        except SymbolDataError as e:
            kind = IssueKind.MISSING_FILE if not path.exists() else IssueKind.UNREADABLE
            issues.append(SymbolLoadIssue(symbol=symbol, kind=kind, message=e.message))
            return [], issues

        if dropped:
            issues.append(
                SymbolLoadIssue(
                    symbol=symbol,
                    kind=IssueKind.ROWS_DROPPED,
                    message=f"{dropped} malformed rows skipped",
                    dropped_rows=dropped,
                )
            )

        if from_date is not None or to_date is not None:
            bars = self.filter_bars(bars, from_date, to_date)

        if not bars:
            issues.append(
                SymbolLoadIssue(symbol=symbol, kind=IssueKind.EMPTY, message="No usable bars")
            )
        elif min_bars and len(bars) < min_bars:
            issues.append(
                SymbolLoadIssue(
                    symbol=symbol,
                    kind=IssueKind.INSUFFICIENT_HISTORY,
                    message=f"{len(bars)} bars available, {min_bars} requested",
                )
            )

        return bars, issues

    # =========================================================================
    # Bulk Loading
    # =========================================================================

    def _load_many(
        self,
        symbols: Iterable[str],
        max_bars: int = 0,
        min_bars: int = 0,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> LoadResult:
        start_time = time.time()
        unique = list(dict.fromkeys(s.upper() for s in symbols))

        loaded: dict[str, list[Bar]] = {}
        issues: list[SymbolLoadIssue] = []

        if unique:
            workers = min(self.max_workers, len(unique))
            with ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="stooq-parse"
            ) as executor:
                future_to_symbol = {
                    executor.submit(
                        self._load_symbol, symbol, max_bars, min_bars, from_date, to_date
                    ): symbol
                    for symbol in unique
                }

                for future in as_completed(future_to_symbol):
                    symbol = future_to_symbol[future]
                    try:
                        bars, symbol_issues = future.result()
                    except Exception as e:
                        logger.warning("Unexpected error loading %s: %s", symbol, e)
                        bars = []
                        symbol_issues = [
                            SymbolLoadIssue(
                                symbol=symbol,
                                kind=IssueKind.UNREADABLE,
                                message=str(e)[:200],
                            )
                        ]
                    loaded[symbol] = bars
                    issues.extend(symbol_issues)

        # Preserve request order
        cache = {symbol: loaded.get(symbol, []) for symbol in unique}
        position = {symbol: i for i, symbol in enumerate(unique)}
        issues.sort(key=lambda issue: position[issue.symbol])

        result = LoadResult(
            cache=cache,
            issues=issues,
            requested=len(unique),
            from_date=from_date,
            to_date=to_date,
            duration_s=round(time.time() - start_time, 4),
        )

        failed = len(result.failed_symbols)
        if failed:
            logger.warning("%d/%d symbols failed to load", failed, len(unique))
        logger.info(
            "Loaded %d/%d symbols (%d bars) in %.2fs",
            len(result.loaded_symbols),
            len(unique),
            result.total_bars,
            result.duration_s,
        )
        return result

    def load(self, symbols: Iterable[str], min_bars: int = 0) -> LoadResult:
        """
        Load the most recent bars for each symbol.

        Args:
            symbols: Symbols to load
            min_bars: Number of trailing bars to keep (0 = full history).
                Symbols with fewer bars are kept and reported.

        Returns:
            LoadResult with one cache entry per requested symbol
        """
        if min_bars < 0:
            raise ValueError("min_bars must be >= 0")
        return self._load_many(symbols, max_bars=min_bars, min_bars=min_bars)

    def load_range(self, symbols: Iterable[str], from_date: date, to_date: date) -> LoadResult:
        """
        Load bars dated within [from_date, to_date] for each symbol.

        Raises:
            InvalidDateRangeError: If to_date precedes from_date
        """
        if to_date < from_date:
            raise InvalidDateRangeError(
                f"End date {to_date} is before start date {from_date}",
                {"from_date": from_date.isoformat(), "to_date": to_date.isoformat()},
            )
        return self._load_many(symbols, from_date=from_date, to_date=to_date)

    def load_async(
        self,
        symbols: Iterable[str],
        min_bars: int = 0,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> "Future[LoadResult]":
        """
        Run load() or load_range() off the calling thread.

        Returns:
            Future resolving to the LoadResult
        """
        symbol_list = list(symbols)
        with self._lock:
            if self._async_executor is None:
                self._async_executor = ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix="stooq-load"
                )
            executor = self._async_executor

        if from_date is not None and to_date is not None:
            return executor.submit(self.load_range, symbol_list, from_date, to_date)
        return executor.submit(self.load, symbol_list, min_bars)

    def extended_start_date(self, start_date: date, max_bars: int) -> date:
        """
        First calendar date needed to give `max_bars` trading days before start_date.

        Trading days are converted to calendar days at 5 per week, then the
        safety margin is added for holidays and gaps.
        """
        calendar_days = math.ceil(max(0, max_bars) * 7 / 5) + self.safety_margin_days
        return start_date - timedelta(days=calendar_days)

    def load_extended(
        self,
        symbols: Iterable[str],
        start_date: date,
        end_date: date,
        max_bars: int,
    ) -> LoadResult:
        """
        Load a backtest master cache.

        Covers (start_date - max_bars trading days - safety margin) .. end_date,
        so the cache can be sliced at any date inside the backtest range.
        """
        if end_date < start_date:
            raise InvalidDateRangeError(
                f"End date {end_date} is before start date {start_date}",
                {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
            )
        from_date = self.extended_start_date(start_date, max_bars)
        logger.info(
            "Extended load %s..%s (lookback %d bars, from %s)",
            start_date,
            end_date,
            max_bars,
            from_date,
        )
        return self._load_many(symbols, from_date=from_date, to_date=end_date)

    def close(self) -> None:
        """Shut down the async loader thread."""
        with self._lock:
            executor, self._async_executor = self._async_executor, None
        if executor is not None:
            executor.shutdown(wait=True)

    # =========================================================================
    # Bar Utilities
    # =========================================================================

    @staticmethod
    def filter_bars(
        bars: list[Bar],
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> list[Bar]:
        """
        Bars dated within [from_date, to_date]; open ends are unbounded.

        Expects bars ascending by date.
        """
        dates = [b.timestamp for b in bars]
        lo = bisect.bisect_left(dates, from_date) if from_date is not None else 0
        hi = bisect.bisect_right(dates, to_date) if to_date is not None else len(bars)
        return bars[lo:hi]

    @staticmethod
    def filter_bars_up_to(bars: list[Bar], upto: date) -> list[Bar]:
        """Bars dated on or before `upto`."""
        return StooqDataStore.filter_bars(bars, None, upto)

    @staticmethod
    def expected_last_close_date(today: date | None = None) -> date:
        """Most recent weekday on or before today."""
        day = today or date.today()
        while day.weekday() >= 5:
            day -= timedelta(days=1)
        return day
