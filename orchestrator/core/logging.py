import logging
import sys
from typing import Any

from loguru import logger

from orchestrator.config import get_settings

# Stdlib loggers routed through loguru
INTERCEPTED_LOGGERS = (
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "sqlalchemy.engine",
    "httpx",
    "apscheduler",
)

# Loggers that only matter when debugging the service itself
QUIET_LOGGERS = ("httpx", "apscheduler")

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> | "
    "<level>{message}</level> | {extra}"
)


class InterceptHandler(logging.Handler):
    """Intercept stdlib logging and redirect to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk back to the frame that issued the stdlib call
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back  # type: ignore[assignment]
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).bind(name=record.name).log(
            level, record.getMessage()
        )


def _health_log_filter(record: dict[str, Any]) -> bool:
    """Filter health check access logs - only show at DEBUG level."""
    message = record.get("message", "")
    if "/health" in message:
        return bool(record["level"].no <= 10)  # DEBUG level
    return True


def setup_logging() -> None:
    """
    Configure loguru for the worker and API processes.

    Debug mode logs everything in color with full diagnostics. Otherwise
    LOG_LEVEL applies and, with LOG_JSON, each record is written as one JSON
    object so job_id / workflow_run_id context survives log shipping.
    """
    settings = get_settings()

    logger.remove()
    logger.configure(extra={"name": "orchestrator"})

    if settings.debug:
        logger.add(
            sys.stderr,
            level="DEBUG",
            format=CONSOLE_FORMAT,
            backtrace=True,
            diagnose=True,
        )
    elif settings.log_json:
        logger.add(
            sys.stderr,
            level=settings.log_level.upper(),
            serialize=True,
            filter=_health_log_filter,
            backtrace=False,
            diagnose=False,
        )
    else:
        logger.add(
            sys.stderr,
            level=settings.log_level.upper(),
            format=CONSOLE_FORMAT,
            colorize=False,
            filter=_health_log_filter,
            diagnose=False,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in INTERCEPTED_LOGGERS:
        stdlib_logger = logging.getLogger(name)
        stdlib_logger.handlers = [InterceptHandler()]
        stdlib_logger.propagate = False

    if not settings.debug:
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> Any:
    """Get a logger bound to a name."""
    return logger.bind(name=name)
