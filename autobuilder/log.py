import os
import sys
import logging
from .settings import Settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

def configure_logging(settings: Settings) -> logging.Logger:
    """Attach stdout (and optional file) handlers to the ``autobuilder`` logger.

    Safe to call more than once: existing handlers are replaced.
    """
    logger = logging.getLogger("autobuilder")
    logger.setLevel(settings.LOG_LEVEL.upper())
    fmt = logging.Formatter(LOG_FORMAT)

    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(fmt)
    logger.addHandler(console_handler)

    if settings.LOG_FILE_PATH:
        log_dir = os.path.dirname(settings.LOG_FILE_PATH)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(settings.LOG_FILE_PATH, mode="a", encoding="utf-8")
        file_handler.setFormatter(fmt)
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger
