import logging
import os
import sys

LOG_FORMAT = "%(asctime)s - [%(levelname)s] - %(name)s : %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Return a logger writing to stdout, configured once per name."""
    logger = logging.getLogger(name)

    if not logger.handlers:
        logger.setLevel(os.getenv("WEBVITALS_LOG_LEVEL", "INFO").upper())
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(handler)

    return logger
