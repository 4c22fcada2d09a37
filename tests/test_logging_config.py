import logging
from logging.handlers import QueueHandler

from monitor_queue.log_handler import setup_logging, shutdown_logging


def test_setup_logging_is_idempotent_and_reversible(tmp_path):
    log_file = tmp_path / "logs" / "monitor_queue.log"

    listener = setup_logging(
        log_level="DEBUG",
        log_file=str(log_file),
        module_levels={"monitor_queue.worker": "WARNING"},
    )
    try:
        assert setup_logging() is listener
        assert log_file.parent.is_dir()
        assert logging.getLogger("monitor_queue.worker").level == logging.WARNING
        assert logging.getLogger("asyncio").level == logging.WARNING
        assert any(isinstance(h, QueueHandler) for h in logging.getLogger().handlers)
    finally:
        shutdown_logging()

    assert not any(isinstance(h, QueueHandler) for h in logging.getLogger().handlers)
