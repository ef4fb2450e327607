"""
Structured logging utilities for API client operations.

This module provides:
- Configured logging with rotation and formatting
- A log formatter with millisecond UTC timestamps and structured extras
- An API event logger for requests, throttling and session changes
- Latency logging for request round-trips

Log Format:
    YYYY-MM-DD HH:MM:SS.mmm [LEVEL] module - message [key=value ...]

Example usage:
    import logging

    from src.lib.logging_utils import setup_logging

    # Setup logging at application start
    setup_logging(level="INFO", log_dir="./logs")

    # Get logger in modules
    logger = logging.getLogger(__name__)
    logger.info("Token refreshed", extra={"scope": "session:bot"})
"""

import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional


# Attributes present on every LogRecord; anything else came in via `extra`
_RESERVED_ATTRS = frozenset((
    "message", "asctime", "args", "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created", "msecs", "relativeCreated", "levelno",
    "levelname", "pathname", "filename", "module", "name", "msg",
    "processName", "process", "threadName", "thread", "taskName",
))


# =============================================================================
# Log Formatting
# =============================================================================

class ApiFormatter(logging.Formatter):
    """
    Custom formatter for client logs.

    Features:
    - Millisecond precision UTC timestamps
    - Colored output for terminal (optional)
    - Extra fields appended as key=value pairs
    """

    # ANSI color codes
    COLORS = {
        logging.DEBUG: "\033[36m",     # Cyan
        logging.INFO: "\033[32m",      # Green
        logging.WARNING: "\033[33m",   # Yellow
        logging.ERROR: "\033[31m",     # Red
        logging.CRITICAL: "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(
        self,
        use_colors: bool = False,
        include_extras: bool = True
    ):
        """
        Initialize formatter.

        Args:
            use_colors: Enable ANSI colors for terminal output
            include_extras: Include extra fields in output
        """
        self.use_colors = use_colors
        self.include_extras = include_extras

        fmt = "[%(levelname)-8s] %(name)s - %(message)s"
        super().__init__(fmt)

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with timestamp and optional colors."""
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        timestamp_str = timestamp.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]

        message = super().format(record)

        if self.include_extras:
            extras = {
                k: v for k, v in record.__dict__.items()
                if k not in logging.LogRecord.__dict__
                and not k.startswith("_")
                and k not in _RESERVED_ATTRS
            }
            if extras:
                extras_str = " ".join(f"{k}={v}" for k, v in extras.items())
                message = f"{message} [{extras_str}]"

        full_message = f"{timestamp_str} {message}"

        if self.use_colors and sys.stderr.isatty():
            color = self.COLORS.get(record.levelno, "")
            return f"{color}{full_message}{self.RESET}"

        return full_message


# =============================================================================
# Logging Setup
# =============================================================================

def setup_logging(
    level: str = "INFO",
    log_dir: Optional[str] = None,
    log_file: Optional[str] = None,
    use_colors: bool = True,
    max_bytes: int = 10 * 1024 * 1024,  # 10 MB
    backup_count: int = 5
) -> logging.Logger:
    """
    Setup application-wide logging configuration.

    Creates handlers for:
    - Console output (with colors if terminal)
    - File output with rotation (if log_dir provided)

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for log files (optional)
        log_file: Specific log file name (default: deribit_YYYY-MM-DD.log)
        use_colors: Enable colored console output
        max_bytes: Max size per log file before rotation
        backup_count: Number of backup files to keep

    Returns:
        Root logger
    """
    root_logger = logging.getLogger()

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)

    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(ApiFormatter(use_colors=use_colors, include_extras=True))
    root_logger.addHandler(console_handler)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        if not log_file:
            today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
            log_file = f"deribit_{today}.log"

        file_handler = RotatingFileHandler(
            log_path / log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8"
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(ApiFormatter(use_colors=False, include_extras=True))
        root_logger.addHandler(file_handler)

    # aiohttp access chatter is rarely useful at INFO
    logging.getLogger("aiohttp").setLevel(max(log_level, logging.WARNING))

    return root_logger


# =============================================================================
# API Event Logger
# =============================================================================

class ApiLogger:
    """
    Specialized logger for API client events.

    Provides methods for logging:
    - Outgoing requests and their latency
    - Rate limit throttling
    - Session lifecycle changes (authenticate, refresh, exchange, fork, logout)

    Access tokens and secrets never go through this class.
    """

    def __init__(self, name: str = "deribit"):
        self._logger = logging.getLogger(name)

    def request(
        self,
        path: str,
        category: str,
        start_time: float,
        end_time: float,
        **kwargs: Any
    ) -> float:
        """Log a completed request; returns its latency in milliseconds."""
        return log_latency(
            self._logger,
            f"REQUEST: {path} [{category}]",
            start_time,
            end_time,
            path=path,
            category=category,
            **kwargs
        )

    def throttled(
        self,
        category: str,
        wait_seconds: float,
        **kwargs: Any
    ) -> None:
        """Log a request held back by the rate limiter."""
        self._logger.debug(
            f"THROTTLE: {category} waiting {wait_seconds:.3f}s",
            extra={"category": category, "wait_seconds": round(wait_seconds, 3), **kwargs}
        )

    def session(
        self,
        event: str,
        scope: Optional[str] = None,
        expires_in: Optional[float] = None,
        **kwargs: Any
    ) -> None:
        """
        Log a session lifecycle event.

        Args:
            event: AUTHENTICATED, REFRESHED, EXCHANGED, FORKED, LOGGED_OUT, CLEARED
            scope: Granted scope of the new token, if any
            expires_in: Lifetime of the new token in seconds, if any
            **kwargs: Additional fields
        """
        parts = [f"SESSION: {event}"]
        if scope:
            parts.append(f"scope={scope}")
        if expires_in is not None:
            parts.append(f"expires_in={expires_in:.0f}s")
        self._logger.info(
            " ".join(parts),
            extra={"event": event, **kwargs}
        )


# =============================================================================
# Convenience Functions
# =============================================================================

def log_latency(
    logger: logging.Logger,
    operation: str,
    start_time: float,
    end_time: float,
    **extra: Any
) -> float:
    """
    Log operation latency at DEBUG.

    Args:
        logger: Logger instance
        operation: Operation name
        start_time: Monotonic start time in seconds
        end_time: Monotonic end time in seconds
        **extra: Fields attached to the record alongside latency_ms

    Returns:
        Latency in milliseconds
    """
    latency_ms = max(end_time - start_time, 0.0) * 1000

    logger.debug(
        f"{operation} {latency_ms:.2f}ms",
        extra={**extra, "latency_ms": round(latency_ms, 2)}
    )

    return latency_ms
