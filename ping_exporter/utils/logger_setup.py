import logging
import os
import sys
from logging.handlers import RotatingFileHandler

LOGGER_NAME = "PingExporter"
LOG_FILE_NAME = "ping_exporter.log"
DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Libraries that are chatty at INFO; the deadline job alone logs on every run.
NOISY_LOGGERS = {
    'apscheduler': logging.WARNING,
    'matplotlib': logging.WARNING,
    'PIL': logging.WARNING,
}


def setup_logger(log_dir, log_level='INFO', log_format=DEFAULT_FORMAT, max_bytes=10 * 1024 * 1024, backup_count=5):
    """
    Configures the "PingExporter" logger tree used by the prober, sink and CLI.

    Console output goes to stderr so per-reply lines on stdout stay clean. Calling
    this again (e.g. probe then analyze in one process) replaces the handlers.

    Args:
        log_dir (str): Directory for ping_exporter.log; created if missing.
        log_level (str): Level name for the exporter's own loggers.
        log_format (str): Format shared by the console and file handlers.

    Returns:
        logging.Logger: The exporter root logger.
    """
    os.makedirs(log_dir, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, str(log_level).upper(), logging.INFO))
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(log_format)
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    file_handler = RotatingFileHandler(
        os.path.join(log_dir, LOG_FILE_NAME), maxBytes=max_bytes, backupCount=backup_count, encoding='utf-8'
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    for name, level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

    return logger
