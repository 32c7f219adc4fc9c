"""
cmdscope Centralized Logging
----------------------------
Structured logging with query_id propagation, so every record produced
while resolving one query can be traced back to it.

Design:
- Every query run gets a unique query_id
- query_id propagates through: orchestrator -> sources -> finalizer
- Console output through rich, file output as JSON lines
- Severity discipline: DEBUG=per-candidate, INFO=query boundaries,
  WARNING=recoverable diagnostics, ERROR=fatal

Usage:
    from infra.logging import get_logger, QueryContext, log_query_end

    logger = get_logger("discovery")

    with QueryContext() as query_id:
        logger.info("Resolving names")
        log_query_end(query_id, success=True, result_count=3)
"""

import contextvars
import json
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.text import Text

# Context variable for query_id - thread-safe and async-safe
_query_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "query_id", default=None
)


def generate_query_id() -> str:
    """Generate a unique query ID."""
    return f"query_{uuid.uuid4().hex[:12]}"


def get_query_id() -> Optional[str]:
    """Get the current query ID from context."""
    return _query_id_var.get()


def set_query_id(query_id: str) -> contextvars.Token:
    return _query_id_var.set(query_id)


def reset_query_id(token: contextvars.Token) -> None:
    _query_id_var.reset(token)


class QueryContext:
    """
    Context manager for query scoping.

    Nested contexts keep the outer query_id unless one is passed in.

    Usage:
        with QueryContext() as query_id:
            # All logs within this block carry query_id
            logger.info("Processing...")
    """

    def __init__(self, query_id: Optional[str] = None):
        self._query_id = query_id
        self._token: Optional[contextvars.Token] = None

    def __enter__(self) -> str:
        query_id = self._query_id or get_query_id() or generate_query_id()
        self._token = set_query_id(query_id)
        return query_id

    def __exit__(self, *args) -> None:
        if self._token is not None:
            reset_query_id(self._token)


class QueryIdFilter(logging.Filter):
    """Logging filter that adds query_id to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "query_id") or record.query_id is None:
            record.query_id = get_query_id() or "-"
        return True


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured file logging."""

    EXTRA_FIELDS = ("error_id", "target", "result_count", "error_count", "success")

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "query_id": getattr(record, "query_id", "-"),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key in self.EXTRA_FIELDS:
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)

        return json.dumps(log_entry, default=str)


class RichConsoleHandler(logging.Handler):
    """Console handler rendering through a rich Console on stderr."""

    LEVEL_STYLES = {
        "DEBUG": "cyan",
        "INFO": "green",
        "WARNING": "yellow",
        "ERROR": "red",
        "CRITICAL": "magenta",
    }

    def __init__(self, console: Optional[Console] = None):
        super().__init__()
        self.console = console or Console(stderr=True)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            query_id = getattr(record, "query_id", "-")
            level = record.levelname

            # Format: [LEVEL] [query_id] logger: message
            line = Text()
            line.append(f"[{level:7}]", style=self.LEVEL_STYLES.get(level, ""))
            if query_id != "-":
                line.append(f" [{query_id}]", style="dim")
            line.append(f" {record.name}: {record.getMessage()}")

            self.console.print(line, highlight=False, soft_wrap=True)

        except Exception:
            self.handleError(record)


class FileRotatingHandler(logging.FileHandler):
    """Simple file handler with size-based rotation."""

    MAX_BYTES = 10 * 1024 * 1024  # 10 MB
    BACKUP_COUNT = 3

    def __init__(self, filename: str, max_bytes: Optional[int] = None, backup_count: Optional[int] = None):
        self._base_path = Path(filename)
        self._max_bytes = max_bytes or self.MAX_BYTES
        self._backup_count = backup_count or self.BACKUP_COUNT

        self._base_path.parent.mkdir(parents=True, exist_ok=True)

        super().__init__(str(self._base_path), mode="a", encoding="utf-8")

    def emit(self, record: logging.LogRecord) -> None:
        try:
            if self._base_path.exists() and self._base_path.stat().st_size > self._max_bytes:
                self._rotate()
        except OSError as e:
            # Keep writing to the current file
            logging.getLogger("cmdscope.logging").debug(f"Log rotation failed: {e}")

        super().emit(record)

    def _rotate(self) -> None:
        """Rotate log files."""
        self.close()

        # Shift existing backups
        for i in range(self._backup_count - 1, 0, -1):
            src = self._base_path.with_suffix(f".{i}.log")
            dst = self._base_path.with_suffix(f".{i + 1}.log")
            if src.exists():
                if dst.exists():
                    dst.unlink()
                src.rename(dst)

        if self._base_path.exists():
            backup = self._base_path.with_suffix(".1.log")
            if backup.exists():
                backup.unlink()
            self._base_path.rename(backup)

        self.stream = open(str(self._base_path), mode="a", encoding="utf-8")


# Global configuration state
_logging_initialized = False
_log_file_path: Optional[Path] = None


def configure_logging(
    level: int = logging.INFO,
    log_dir: Optional[str] = None,
    console: bool = True,
    file: bool = False,
    file_name: str = "cmdscope.log",
    force: bool = False,
) -> None:
    """
    Configure the cmdscope logging system.

    Nothing is configured on import; library users keep control of the
    root logger. Calling again is a no-op unless force is set.

    Args:
        level: Logging level (default INFO)
        log_dir: Directory for log files (default: ./logs)
        console: Enable console output
        file: Enable file output
        file_name: Log file name inside log_dir
        force: Replace an earlier configuration
    """
    global _logging_initialized, _log_file_path

    if _logging_initialized and not force:
        return

    root_logger = logging.getLogger("cmdscope")
    root_logger.setLevel(min(level, logging.DEBUG) if file else level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    query_filter = QueryIdFilter()

    if console:
        console_handler = RichConsoleHandler()
        console_handler.setLevel(level)
        console_handler.addFilter(query_filter)
        root_logger.addHandler(console_handler)

    if file:
        log_path = Path(log_dir) if log_dir else Path("logs")
        log_path.mkdir(parents=True, exist_ok=True)

        _log_file_path = log_path / file_name

        file_handler = FileRotatingHandler(str(_log_file_path))
        file_handler.setLevel(logging.DEBUG)  # File gets everything
        file_handler.setFormatter(JSONFormatter())
        file_handler.addFilter(query_filter)
        root_logger.addHandler(file_handler)

    _logging_initialized = True


def get_log_file_path() -> Optional[Path]:
    return _log_file_path


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the cmdscope namespace.

    Args:
        name: Logger name (prefixed with 'cmdscope.' if not already)
    """
    if not name.startswith("cmdscope"):
        name = f"cmdscope.{name}"

    return logging.getLogger(name)


def log_query_end(
    query_id: str,
    success: bool,
    result_count: int = 0,
    error_count: int = 0,
    error: Optional[str] = None,
) -> None:
    """
    Log the end of a query run with summary information.

    This is the QUERY_END boundary event for post-mortems.
    """
    logger = get_logger("core.query")

    extra = {
        "query_id": query_id,
        "success": success,
        "result_count": result_count,
        "error_count": error_count,
    }

    if success:
        logger.info(
            f"QUERY_END: success={success}, results={result_count}, errors={error_count}",
            extra=extra,
        )
    else:
        logger.error(
            f"QUERY_END: success={success}, error={error or 'Unknown'}",
            extra=extra,
        )

