import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar, Token
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Generator, Optional, Union

# Context-local trace id, set per trigger computation
correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


class TraceFormatter(logging.Formatter):
    """
    Formatter that injects the active trace id and renders timestamps in UTC.
    """

    def __init__(self, fmt: str | None = None, datefmt: str | None = None):
        super().__init__(fmt, datefmt)
        # Trigger instants are UTC, so log timestamps are too
        self.converter = time.gmtime

    def formatTime(self, record, datefmt=None):
        """ISO-8601 UTC timestamps with millisecond precision."""
        ct = self.converter(record.created)
        if datefmt:
            return time.strftime(datefmt, ct)
        t = time.strftime("%Y-%m-%dT%H:%M:%S", ct)
        return "%s.%03dZ" % (t, record.msecs)

    def format(self, record: logging.LogRecord) -> str:
        cid = correlation_id.get()
        # Distinct attribute name to avoid collisions with extra={}
        record.trace_str = f"[{cid}] " if cid else ""
        return super().format(record)


def get_logger(name: str) -> logging.Logger:
    """
    Returns a standard logger instance.

    Name loggers after the module they live in:
    >>> logger = get_logger(__name__)
    """
    return logging.getLogger(name)


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    max_bytes: int = 10_485_760,  # 10MB
    backup_count: int = 10,
    capture_roots: bool = False,
    module_name: str = "flash_alarm",
) -> logging.Logger:
    """
    Configure logging for the flash packages.

    Args:
        level: Logging level (INFO, DEBUG, etc.)
        log_file: Optional path of a rotating log file.
        capture_roots: If True, configures the root logger.
                       If False, only configures the ``module_name`` namespace.
        module_name: Namespace configured when ``capture_roots`` is False.

    Returns:
        The logger that received the handlers.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    target_logger = (
        logging.getLogger() if capture_roots else logging.getLogger(module_name)
    )

    # Reset handlers so reconfiguration (e.g. in tests) does not duplicate output
    target_logger.handlers.clear()
    target_logger.setLevel(level)

    # %(trace_str)s is injected by TraceFormatter
    log_format = "%(asctime)s %(levelname)-8s %(trace_str)s%(name)s: %(message)s"
    formatter = TraceFormatter(log_format)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    target_logger.addHandler(console)

    if log_file:
        file_path = Path(log_file).resolve()
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = RotatingFileHandler(
                file_path,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
            file_handler.setFormatter(formatter)
            target_logger.addHandler(file_handler)
        except OSError as e:
            # Read-only filesystems keep the console handler only
            sys.stderr.write(f"Failed to setup log file: {e}\n")

    if not capture_roots:
        target_logger.propagate = False

    return target_logger


def set_correlation_id(value: str) -> Token:
    """
    Sets the trace id and returns a token for cleanup.

    >>> token = set_correlation_id("alarm-555")
    >>> reset_correlation_id(token)
    """
    return correlation_id.set(value)


def reset_correlation_id(token: Token) -> None:
    """Restore the trace id that was active before ``set_correlation_id``."""
    correlation_id.reset(token)


@contextmanager
def scoped_correlation_id(value: str | None) -> Generator[None, None, None]:
    """
    Context manager that tags every log line emitted inside it.

    A ``None`` value leaves the current trace id untouched.

    >>> with scoped_correlation_id("alarm-123"):
    ...     pass
    """
    if value is None:
        yield
        return
    token = set_correlation_id(value)
    try:
        yield
    finally:
        reset_correlation_id(token)
