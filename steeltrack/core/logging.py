"""
SteelTrack Logging Configuration
Centralized logging setup for the SteelTrack application
"""
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

from .config import settings

ROOT_LOGGER_NAME = "steeltrack"


def setup_logging(
    log_level: Optional[str] = None,
    log_to_file: bool = True,
    log_to_console: bool = True,
    log_dir: Optional[Path] = None,
) -> logging.Logger:
    """
    Configure logging for the SteelTrack application

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_to_file: Whether to log to files
        log_to_console: Whether to log to console
        log_dir: Directory for log files, defaults to settings.LOG_DIR

    Returns:
        Configured logger instance
    """
    level = getattr(logging, (log_level or settings.LOG_LEVEL).upper(), logging.INFO)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    detailed_formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(funcName)s() - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    target_dir = None
    if log_to_file:
        target_dir = Path(log_dir or settings.LOG_DIR)
        target_dir.mkdir(exist_ok=True, parents=True)

        app_handler = logging.handlers.RotatingFileHandler(
            target_dir / settings.LOG_FILE,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8"
        )
        app_handler.setLevel(level)
        app_handler.setFormatter(detailed_formatter)
        logger.addHandler(app_handler)

        # Errors and above only
        error_handler = logging.handlers.RotatingFileHandler(
            target_dir / settings.ERROR_LOG_FILE,
            maxBytes=5 * 1024 * 1024,  # 5MB
            backupCount=3,
            encoding="utf-8"
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(detailed_formatter)
        logger.addHandler(error_handler)

    setup_module_loggers(level, detailed_formatter, target_dir)

    return logger


def setup_module_loggers(
    level: int,
    file_formatter: logging.Formatter,
    log_dir: Optional[Path] = None
):
    """Setup loggers for specific subsystems"""
    module_logs = (
        ("database", "database.log", level, 3),
        ("imports", "imports.log", level, 5),
        # Security events are always kept
        ("security", "security.log", logging.INFO, 10),
    )
    for name, filename, module_level, backups in module_logs:
        module_logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
        module_logger.setLevel(module_level)
        for handler in list(module_logger.handlers):
            module_logger.removeHandler(handler)
            handler.close()
        if log_dir:
            handler = logging.handlers.RotatingFileHandler(
                log_dir / filename,
                maxBytes=5 * 1024 * 1024,
                backupCount=backups,
                encoding="utf-8"
            )
            handler.setFormatter(file_formatter)
            module_logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name"""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


__all__ = [
    "setup_logging",
    "get_logger",
]
