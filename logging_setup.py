import logging
import os
from logging.handlers import RotatingFileHandler

from settings import LOG_FILE, LOG_LEVEL

LOGGER_NAME = "StudyRewards"


def setup_logger(log_file: str = LOG_FILE, level: str = LOG_LEVEL) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    if not logger.handlers:
        os.makedirs(os.path.dirname(log_file), exist_ok=True)
        handler = RotatingFileHandler(
            log_file,
            maxBytes=1_000_000,
            backupCount=3,
            encoding="utf-8",
        )
        fmt = logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
        handler.setFormatter(fmt)
        logger.addHandler(handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Child logger under the application logger, e.g. ``StudyRewards.ledger``."""
    return logging.getLogger(f"{LOGGER_NAME}.{name}")
