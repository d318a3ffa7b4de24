import logging
import sys
from pathlib import Path

from netdisk.config import Settings


def setup_logger(settings: Settings) -> logging.Logger:
    logger = logging.getLogger("netdisk")
    logger.setLevel(settings.log_level.upper())

    # create_app may run more than once per process (tests); keep one set of handlers
    if logger.handlers:
        return logger

    console_formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s")
        )
        logger.addHandler(file_handler)

    return logger
