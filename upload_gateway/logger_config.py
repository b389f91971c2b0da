import logging
import sys
from pathlib import Path
from typing import Optional

LOGGER_NAME = "upload_gateway"


def setup_logger(log_dir: Optional[Path] = None, level: Optional[str] = None) -> logging.Logger:
    # Configure logger; safe to call from every module
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    handler_types = {type(h) for h in logger.handlers}

    # Console handler (for basic logging)
    if logging.StreamHandler not in handler_types:
        console_formatter = logging.Formatter(
            '%(asctime)s - %(levelname)s - %(message)s'
        )
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(console_formatter)
        logger.addHandler(console_handler)

    if level:
        for handler in logger.handlers:
            if type(handler) is logging.StreamHandler:
                handler.setLevel(level)

    # File handler (for detailed logging), only when a log directory is configured
    if log_dir is not None and logging.FileHandler not in handler_types:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_formatter = logging.Formatter(
            '%(asctime)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
        )
        file_handler = logging.FileHandler(log_dir / f"{LOGGER_NAME}.log")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    return logger
