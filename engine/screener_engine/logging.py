"""
Logging configuration for the screening engine.

Provides consistent logging format across all modules with:
- JSON structured output for production
- Human-readable output for development
- Run ID tracking so backtest log lines can be correlated
- In-memory buffer for diagnostics
"""

import logging
import sys
from collections import deque
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Context variable for tracking the active backtest run
current_run_id: ContextVar[str | None] = ContextVar("current_run_id", default=None)


class EngineFormatter(logging.Formatter):
    """
    Formatter that adds an ISO timestamp and the active run_id.
    """

    def format(self, record: logging.LogRecord) -> str:
        record.timestamp = datetime.now(UTC).isoformat()

        run_id = current_run_id.get()
        record.run_id = f"[{run_id}] " if run_id else ""

        return super().format(record)


class InMemoryHandler(logging.Handler):
    """Keeps the most recent log records for diagnostics."""

    def __init__(self, capacity: int = 1000):
        super().__init__()
        self.logs: deque[dict[str, Any]] = deque(maxlen=capacity)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.logs.append(
                {
                    "timestamp": getattr(record, "timestamp", datetime.now(UTC).isoformat()),
                    "level": record.levelname,
                    "level_no": record.levelno,
                    "logger": record.name,
                    "run_id": current_run_id.get(),
                    "message": record.getMessage(),
                }
            )
        except Exception:
            self.handleError(record)


_in_memory_handler = InMemoryHandler()


def setup_logging(level: str = "INFO", json_output: bool = False) -> logging.Logger:
    """
    Configure logging for the engine.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, output JSON format

    Returns:
        Configured root logger
    """
    root = logging.getLogger()
    root.handlers.clear()

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root.setLevel(numeric_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)

    if json_output:
        fmt = (
            '{"timestamp": "%(timestamp)s", "level": "%(levelname)s", '
            '"module": "%(name)s", "run_id": "%(run_id)s", "message": "%(message)s"}'
        )
    else:
        fmt = "%(timestamp)s | %(levelname)-8s | %(name)s | %(run_id)s%(message)s"

    formatter = EngineFormatter(fmt)
    handler.setFormatter(formatter)
    root.addHandler(handler)

    _in_memory_handler.setLevel(numeric_level)
    _in_memory_handler.setFormatter(formatter)
    root.addHandler(_in_memory_handler)

    return root


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module.

    Args:
        name: Module name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def get_in_memory_logs(level: str = "INFO", limit: int = 50) -> list[dict[str, Any]]:
    """Get filtered logs from memory."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    filtered = [log for log in _in_memory_handler.logs if log["level_no"] >= numeric_level]
    return filtered[-limit:]


def set_run_id(run_id: str) -> None:
    """Set the current run ID for log correlation."""
    current_run_id.set(run_id)


def clear_run_id() -> None:
    """Clear the current run ID."""
    current_run_id.set(None)
