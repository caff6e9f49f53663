import logging
import sys
import os
from logging.handlers import RotatingFileHandler
from typing import List

# Log directory can be redirected (tests, packaged clients)
LOGS_DIR = os.getenv("QUESTLINE_LOG_DIR") or os.path.join(os.path.dirname(__file__), "logs")
LOG_FILE = "questline.log"

# Package loggers that use logging.getLogger(__name__) and share the app handlers
LIBRARY_LOGGERS = ("rivals",)


class ColorFormatter(logging.Formatter):
    """Level-colored console output; plain text when stdout is not a terminal"""

    COLORS = {
        logging.DEBUG: "\x1b[38;20m",
        logging.INFO: "\x1b[34;20m",
        logging.WARNING: "\x1b[33;20m",
        logging.ERROR: "\x1b[31;20m",
        logging.CRITICAL: "\x1b[31;1m",
    }
    RESET = "\x1b[0m"

    def __init__(self, use_color: bool = True):
        super().__init__(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s (%(filename)s:%(lineno)d)",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        self.use_color = use_color

    def format(self, record):
        text = super().format(record)
        if not self.use_color:
            return text
        return f"{self.COLORS.get(record.levelno, '')}{text}{self.RESET}"


def _file_handler() -> logging.Handler:
    # 5MB per file, keep last 5 backups
    os.makedirs(LOGS_DIR, exist_ok=True)
    handler = RotatingFileHandler(
        os.path.join(LOGS_DIR, LOG_FILE), maxBytes=5*1024*1024, backupCount=5, encoding='utf-8'
    )
    handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))
    return handler


def setup_logger(name: str = "questline", level: int = logging.INFO) -> logging.Logger:
    """Configure the app logger and route the package loggers to the same handlers"""

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Called more than once (reloads, tests): keep the first set of handlers
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ColorFormatter(use_color=sys.stdout.isatty()))
    handlers: List[logging.Handler] = [console_handler]
    file_error = None
    try:
        handlers.append(_file_handler())
    except OSError as e:
        file_error = e

    for target in (logger, *(logging.getLogger(n) for n in LIBRARY_LOGGERS)):
        target.setLevel(level)
        for handler in handlers:
            target.addHandler(handler)

    if file_error:
        logger.warning(f"File logging disabled: {file_error}")

    return logger


# Global logger instance
logger = setup_logger()
