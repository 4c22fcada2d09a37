# monitor_queue/log_handler/logging_config.py
import logging
import queue
import os
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from typing import Optional, Union

# Configure logging only once per process
_logging_configured = False
_log_listener: Optional[QueueListener] = None
_queue_handler: Optional[QueueHandler] = None

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ("aiohttp.access", "asyncio", "urllib3")


def _to_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    return getattr(logging, str(level).upper(), logging.INFO)


def setup_logging(
    log_level: Union[int, str, None] = None,
    log_file: Optional[str] = None,
    module_levels: Optional[dict] = None,
) -> QueueListener:
    """
    Central logging configuration for the monitor queue service.

    Records are pushed onto an in-memory queue and written by a background
    listener, so logging from the event loop never blocks on I/O.

    Args:
        log_level: Base level; defaults to the LOG_LEVEL env var or INFO
        log_file: Optional file path for a rotating log file
        module_levels: Mapping of logger names to levels,
                      e.g. {"monitor_queue.worker": "DEBUG"}

    Returns:
        The running QueueListener
    """
    global _logging_configured, _log_listener, _queue_handler

    if _logging_configured and _log_listener is not None:
        return _log_listener

    if log_level is None:
        log_level = os.environ.get("LOG_LEVEL", "INFO")

    if log_file and os.path.dirname(log_file):
        os.makedirs(os.path.dirname(log_file), exist_ok=True)

    log_queue = queue.Queue()
    formatter = logging.Formatter(LOG_FORMAT)

    handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    if log_file:
        file_handler = RotatingFileHandler(
            log_file, maxBytes=10 * 1024 * 1024, backupCount=5  # 10MB
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    queue_handler = QueueHandler(log_queue)
    listener = QueueListener(log_queue, *handlers, respect_handler_level=True)

    root_logger = logging.getLogger()

    # Drop existing handlers to avoid duplicate output
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    root_logger.addHandler(queue_handler)
    root_logger.setLevel(_to_level(log_level))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if module_levels:
        for module_name, level in module_levels.items():
            logging.getLogger(module_name).setLevel(_to_level(level))

    listener.start()

    _logging_configured = True
    _log_listener = listener
    _queue_handler = queue_handler

    return listener


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module, typically called with __name__."""
    return logging.getLogger(name)


def shutdown_logging() -> None:
    """
    Flush and stop the background listener.
    Call during application shutdown.
    """
    global _log_listener, _logging_configured, _queue_handler

    if _log_listener is not None:
        _log_listener.stop()
        _log_listener = None
        _logging_configured = False

    if _queue_handler is not None:
        logging.getLogger().removeHandler(_queue_handler)
        _queue_handler = None
