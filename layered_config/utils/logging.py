"""
Safe logging for the configuration service.
structlog loggers behind an adapter that keeps secret-looking context fields
out of log output.
"""

import logging
from typing import Any, Dict, Optional

import structlog

from ..contracts import REDACTED

# Context field names that never reach a renderer in clear text
SECRET_FIELD_MARKERS = ("password", "secret", "token", "plaintext", "encryption_key")


def is_secret_field(name: str) -> bool:
    lowered = name.lower()
    return any(marker in lowered for marker in SECRET_FIELD_MARKERS)


class SafeLogger:
    """
    Keyword-context logger that redacts secret fields.

    Every module logs through one of these, so a field such as
    ``password=...`` or ``token=...`` is emitted as ``[ENCRYPTED]`` even if a
    call site passes it by mistake. Configuration keys are logged under
    ``key=`` and stay readable.
    """

    def __init__(self, logger: Any):
        self._logger = logger

    @staticmethod
    def _scrub(fields: Dict[str, Any]) -> Dict[str, Any]:
        return {
            name: REDACTED if value is not None and is_secret_field(name) else value
            for name, value in fields.items()
        }

    def _log(self, log_level: str, event: str, **kwargs) -> None:
        getattr(self._logger, log_level)(event, **self._scrub(kwargs))

    def bind(self, **kwargs) -> 'SafeLogger':
        """Bound copy; bound context is scrubbed the same way"""
        return SafeLogger(self._logger.bind(**self._scrub(kwargs)))

    def debug(self, event: str, **kwargs) -> None:
        self._log('debug', event, **kwargs)

    def info(self, event: str, **kwargs) -> None:
        self._log('info', event, **kwargs)

    def warning(self, event: str, **kwargs) -> None:
        self._log('warning', event, **kwargs)

    def error(self, event: str, **kwargs) -> None:
        self._log('error', event, **kwargs)

    def critical(self, event: str, **kwargs) -> None:
        self._log('critical', event, **kwargs)


def get_safe_logger(name: Optional[str] = None) -> SafeLogger:
    """
    Get a SafeLogger backed by structlog.

    Args:
        name: Optional logger name

    Returns:
        SafeLogger instance
    """
    logger = structlog.get_logger(name) if name else structlog.get_logger()
    return SafeLogger(logger)


def configure_logging(level: str = "INFO", json_output: bool = True) -> None:
    """
    Configure structlog on top of the stdlib logging tree.

    Args:
        level: Root log level name
        json_output: Render JSON lines instead of the console renderer
    """
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format="%(message)s")

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
