import logging

import pytest

from cbt_session.log_config import configure_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    saved = (root.level, list(root.handlers))
    yield
    for handler in root.handlers:
        if handler not in saved[1]:
            handler.close()
    root.handlers[:] = saved[1]
    root.setLevel(saved[0])


def test_writes_to_log_file(tmp_path):
    log_file = tmp_path / "cbt_session.log"
    configure_logging(str(log_file), level=logging.DEBUG)

    logging.getLogger("cbt_session.test").info("세션 시작")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert "[INFO] 세션 시작" in log_file.read_text(encoding="utf-8")
    assert logging.getLogger().level == logging.DEBUG


def test_unwritable_log_file_falls_back_to_console(tmp_path):
    configure_logging(str(tmp_path / "missing" / "cbt_session.log"))

    handlers = logging.getLogger().handlers
    assert len(handlers) == 1
    assert not isinstance(handlers[0], logging.FileHandler)


def test_console_only_when_disabled():
    configure_logging(None)
    assert not any(isinstance(h, logging.FileHandler) for h in logging.getLogger().handlers)
