"""
Utility modules for the configuration service
"""

from .logging import (
    SafeLogger,
    get_safe_logger,
    configure_logging
)

__all__ = [
    "SafeLogger",
    "get_safe_logger",
    "configure_logging",
]
