import logging
from pathlib import Path

import pytest

from node_fingerprint.logging import NETWORK_LOGGERS, configure_logging


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
    for name in NETWORK_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET)


def test_network_loggers_quiet_by_default(restore_logging) -> None:
    configure_logging("DEBUG")

    assert logging.getLogger().level == logging.DEBUG
    for name in NETWORK_LOGGERS:
        assert logging.getLogger(name).level == logging.WARNING


def test_log_network_keeps_metadata_traffic(restore_logging) -> None:
    configure_logging("DEBUG", log_network=True)

    assert logging.getLogger("node_fingerprint.fingerprint.metadata").isEnabledFor(
        logging.DEBUG
    )


def test_file_handler_writes_log(restore_logging, tmp_path: Path) -> None:
    log_path = tmp_path / "logs" / "agent.log"
    configure_logging("INFO", log_path=log_path)

    logging.getLogger("node_fingerprint.test").info("probe finished")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert "| INFO | node_fingerprint.test | probe finished" in log_path.read_text(
        encoding="utf-8"
    )
