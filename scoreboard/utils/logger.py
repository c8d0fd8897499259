import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from scoreboard.config import Config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# One file handler per log file, shared by every scoreboard logger
_file_handlers: Dict[Path, logging.FileHandler] = {}


def console_level() -> int:
    """LOG_LEVEL wins when set to a known level name; otherwise DEBUG follows Config.DEBUG."""
    if Config.LOG_LEVEL:
        level = logging.getLevelName(Config.LOG_LEVEL.upper())
        if isinstance(level, int):
            return level
    return logging.DEBUG if Config.DEBUG else logging.INFO


def log_file_path(log_dir: Optional[str] = None, when: Optional[datetime] = None) -> Path:
    """Daily log file, e.g. logs/scoreboard_20240101.log"""
    directory = Path(log_dir or Config.LOG_DIR)
    stamp = (when or datetime.now()).strftime("%Y%m%d")
    return directory / f'{Config.LOG_FILE_PREFIX}_{stamp}.log'


def _file_handler(path: Path, formatter: logging.Formatter) -> logging.FileHandler:
    handler = _file_handlers.get(path)
    if handler is None:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding='utf-8')
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(formatter)
        _file_handlers[path] = handler
    return handler


def setup_logger(name: str, log_dir: Optional[str] = None) -> logging.Logger:
    """Setup a logger with a console handler and the shared daily file handler.

    The file always gets full DEBUG detail; the console follows console_level().
    Calling it again for the same name returns the configured logger unchanged.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    level = console_level()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if Config.LOG_TO_FILE:
        logger.addHandler(_file_handler(log_file_path(log_dir), formatter))
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(level)

    return logger
