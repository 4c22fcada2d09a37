"""Central logging setup for the monitor queue service."""

from .logging_config import LOG_FORMAT, setup_logging, get_logger, shutdown_logging

__all__ = [
    "LOG_FORMAT",
    "setup_logging",
    "get_logger",
    "shutdown_logging",
]
