"""
Core infrastructure shared by the flow engine modules.
"""

from .logging import LogFormat, get_logger, setup_logging

__all__ = [
    "LogFormat",
    "get_logger",
    "setup_logging",
]
