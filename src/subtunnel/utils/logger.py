"""
Logging setup for subtunnel.

All modules log through loguru. Standard-library loggers (uvicorn, httpx)
are intercepted and re-emitted through loguru so the relay produces a
single, consistently formatted stream.

Usage:
    from subtunnel.utils.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Relay started")
"""

import logging
import sys
import traceback

from loguru import logger as _logger

from subtunnel.models.enums import LogLevel

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)

# LogLevel -> loguru level name
_LEVEL_MAP = {
    LogLevel.FULL: "TRACE",
    LogLevel.DEBUG: "DEBUG",
    LogLevel.INFO: "INFO",
    LogLevel.WARNING: "WARNING",
}

_logger.configure(extra={"name": "subtunnel"})


# =============================================================================
# Standard Logging Bridge
# =============================================================================


class InterceptHandler(logging.Handler):
    """Forward standard logging records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = _logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk back to the frame that issued the logging call
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        _logger.bind(name=record.name).opt(
            depth=depth, exception=record.exc_info
        ).log(level, record.getMessage())


# =============================================================================
# Public API
# =============================================================================


def configure_logging(level: LogLevel = LogLevel.INFO) -> None:
    """
    Configure loguru and route standard logging through it.

    Args:
        level: Minimum level to emit.
    """
    loguru_level = _LEVEL_MAP.get(level, "INFO")

    _logger.remove()
    _logger.add(
        sys.stderr,
        level=loguru_level,
        format=LOG_FORMAT,
        backtrace=level == LogLevel.FULL,
        diagnose=level == LogLevel.FULL,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "httpx"):
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False

    # httpx logs every request at INFO; keep it for full tracing only
    logging.getLogger("httpx").setLevel(
        logging.DEBUG if level == LogLevel.FULL else logging.WARNING
    )


def get_logger(name: str):
    """Get a loguru logger bound to a module name."""
    return _logger.bind(name=name)


def format_traceback(exc: BaseException) -> str:
    """Format an exception with its traceback as a single string."""
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
