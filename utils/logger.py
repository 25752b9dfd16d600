import logging
import sys
from logging.handlers import RotatingFileHandler
from config import LOG_LEVEL, LOG_FILE

LOG_FORMAT = "[%(asctime)s] %(levelname)s in %(module)s:%(lineno)d: %(message)s"


def get_logger(name="viloai", log_file=LOG_FILE):
    logger = logging.getLogger(name)
    if not logger.handlers:
        # Console handler
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(console_handler)

        # Rotating file handler (UTF-8 safe)
        if log_file:
            file_handler = RotatingFileHandler(log_file, maxBytes=5*1024*1024, backupCount=3, encoding="utf-8")
            file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            logger.addHandler(file_handler)

        # Set log level from config
        level = getattr(logging, LOG_LEVEL.upper(), logging.INFO)
        logger.setLevel(level)
        logger.propagate = False
    return logger

logger = get_logger()
