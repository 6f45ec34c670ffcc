import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
ROOT_LOGGER = "pegeldict"


def setup_logging(level: str | None = None) -> None:
    resolved = (level or os.environ.get("PEGELDICT_LOG_LEVEL") or "INFO").upper()
    logger = logging.getLogger(ROOT_LOGGER)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, resolved, logging.INFO))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
