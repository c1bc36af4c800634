import logging
import sys
from typing import Optional, Tuple
import structlog
from pythonjsonlogger import jsonlogger

from notify_relay.core.config import Settings


def _build_handler(log_path: Optional[str]) -> Tuple[logging.Handler, Optional[OSError]]:
    if log_path:
        try:
            return logging.FileHandler(log_path, mode="a", encoding="utf-8"), None
        except OSError as e:
            return logging.StreamHandler(sys.stdout), e
    return logging.StreamHandler(sys.stdout), None


def setup_logging(settings: Settings):
    """
    Configure JSON structured logging for the process.

    Records go to LOG_PATH when it is set and writable, otherwise to stdout.
    """
    handler, open_error = _build_handler(settings.LOG_PATH)
    handler.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s"))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.LOG_LEVEL))

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.render_to_log_kwargs,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if open_error is not None:
        get_logger(__name__).error("Cannot open log file, logging to stdout",
                                   log_path=settings.LOG_PATH,
                                   error=str(open_error))


class ContextLogger:
    """
    Logger with context support for tracing messages through the relay.
    """

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def with_context(self, **kwargs) -> structlog.BoundLogger:
        """Add context to logger."""
        return self.logger.bind(**kwargs)

    def info(self, message: str, **kwargs):
        self.logger.info(message, **kwargs)

    def error(self, message: str, **kwargs):
        self.logger.error(message, **kwargs)

    def warning(self, message: str, **kwargs):
        self.logger.warning(message, **kwargs)

    def debug(self, message: str, **kwargs):
        self.logger.debug(message, **kwargs)

    def critical(self, message: str, **kwargs):
        self.logger.critical(message, **kwargs)


def get_logger(name: str) -> ContextLogger:
    """
    Get a context-aware logger instance.
    """
    return ContextLogger(name)
