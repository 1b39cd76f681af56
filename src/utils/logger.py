"""Centralized logging configuration with file rotation."""

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path


_loggers: dict[str, logging.Logger] = {}

_defaults = {
    'level': 'INFO',
    'log_dir': 'logs',
}


def configure_logging(level: str = "INFO", log_dir: str = "logs") -> None:
    """
    Set the defaults used by loggers created after this call.

    Loggers that already exist are updated to the new level so that scripts
    can configure logging after modules have been imported.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for log files
    """
    _defaults['level'] = level.upper()
    _defaults['log_dir'] = log_dir

    for logger in _loggers.values():
        logger.setLevel(getattr(logging, level.upper()))


def setup_logger(
    name: str,
    level: str | None = None,
    log_dir: str | None = None
) -> logging.Logger:
    """
    Set up a logger with both console and file handlers.

    Args:
        name: Logger name (typically module name)
        level: Logging level, defaults to the configured level
        log_dir: Directory for log files, defaults to the configured directory

    Returns:
        Configured logger instance

    Example:
        >>> logger = setup_logger("sync", level="INFO")
        >>> logger.info("Aggregating senders...")
    """
    if name in _loggers:
        return _loggers[name]

    level = (level or _defaults['level']).upper()
    log_path = Path(log_dir or _defaults['log_dir'])

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level))
    logger.propagate = False

    log_path.mkdir(parents=True, exist_ok=True)

    # Console handler (INFO and above)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))

    # One file per top-level package keeps the log directory small
    root_name = name.split('.')[0] or 'inbox_sync'
    file_handler = TimedRotatingFileHandler(
        log_path / f"{root_name}.log",
        when='midnight',
        interval=1,
        backupCount=30,
        encoding='utf-8',
        delay=True
    )
    file_handler.setLevel(getattr(logging, level))
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))

    logger.addHandler(console_handler)
    logger.addHandler(file_handler)

    _loggers[name] = logger

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get an existing logger or create a new one with default settings.

    Args:
        name: Logger name

    Returns:
        Logger instance

    Example:
        >>> logger = get_logger("src.providers.gmail")
        >>> logger.debug("Listing inbox page...")
    """
    if name in _loggers:
        return _loggers[name]
    return setup_logger(name)
