import logging

from ping_exporter.utils.logger_setup import LOG_FILE_NAME, LOGGER_NAME, setup_logger


def test_repeated_setup_keeps_one_pair_of_handlers(tmp_path):
    log_dir = tmp_path / "logs"
    setup_logger(str(log_dir), "DEBUG")
    logger = setup_logger(str(log_dir), "warning")

    assert logger.name == LOGGER_NAME
    assert len(logger.handlers) == 2
    assert logger.level == logging.WARNING
    assert logger.propagate is False

    logger.warning("disk almost full")
    for handler in logger.handlers:
        handler.flush()
    assert "disk almost full" in (log_dir / LOG_FILE_NAME).read_text(encoding="utf-8")


def test_child_loggers_share_the_file(tmp_path):
    setup_logger(str(tmp_path), "INFO", "%(name)s|%(message)s")
    logging.getLogger(f"{LOGGER_NAME}.Sink").info("serving")
    for handler in logging.getLogger(LOGGER_NAME).handlers:
        handler.flush()
    assert "PingExporter.Sink|serving" in (tmp_path / LOG_FILE_NAME).read_text(encoding="utf-8")


def test_scheduler_chatter_is_quieted(tmp_path):
    logging.getLogger("apscheduler").setLevel(logging.DEBUG)
    setup_logger(str(tmp_path))
    assert logging.getLogger("apscheduler").level == logging.WARNING
    assert logging.getLogger("apscheduler.scheduler").getEffectiveLevel() == logging.WARNING


def test_unknown_level_falls_back_to_info(tmp_path):
    assert setup_logger(str(tmp_path), "LOUD").level == logging.INFO
