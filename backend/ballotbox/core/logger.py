import logging
from logging.handlers import RotatingFileHandler

from ballotbox.core.settings import get_settings

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def _build_logger(name: str) -> logging.Logger:
    settings = get_settings()
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, settings.log_level, logging.INFO))

    # Prevent duplicate handlers
    if not logger.handlers:
        # Rotating file handler: max 5 MB per file, keep 3 backups
        file_handler = RotatingFileHandler(
            settings.log_file, maxBytes=5 * 1024 * 1024, backupCount=3
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)
    return logger


# Casting and registration
ballot_logger = _build_logger("ballot")
# Validator and repair engine
integrity_logger = _build_logger("integrity")

__all__ = ["ballot_logger", "integrity_logger"]
