#!/usr/bin/env python3
"""
Logging setup for the channel automation system

Everything logs under the `autopilot` tree: a rotating file gets the full
record, the console gets a rich-rendered view at its own level.
"""

import logging
import logging.handlers
from pathlib import Path

from rich.logging import RichHandler

ROOT_LOGGER = 'autopilot'

# Chatty third-party loggers capped at WARNING unless configured otherwise
NOISY_LOGGERS = ('aiohttp.access', 'openai', 'httpx')


def setup_logging(config: 'Config') -> logging.Logger:
    """Configure the `autopilot` logger tree from `config.logging`"""

    log_config = config.logging
    level = getattr(logging, log_config.get('level', 'INFO').upper())
    console_level = getattr(logging, log_config.get('console_level', logging.getLevelName(level)).upper())
    log_file = Path(log_config.get('file', Path(config.paths.logs) / 'automation.log'))
    log_file.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.handlers.clear()

    file_handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=log_config.get('max_size_mb', 100) * 1024 * 1024,
        backupCount=log_config.get('backup_count', 5),
        encoding='utf-8'
    )
    file_handler.setFormatter(logging.Formatter(
        log_config.get('format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    ))
    logger.addHandler(file_handler)

    # rich renders its own time and level columns
    console_handler = RichHandler(show_path=False, rich_tracebacks=True)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter('%(name)s - %(message)s'))
    logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(log_config.get('library_level', 'WARNING'))

    return logger


class LoggerMixin:
    """Gives a class an `autopilot.<ClassName>` logger"""

    @property
    def logger(self) -> logging.Logger:
        if not hasattr(self, '_logger'):
            self._logger = logging.getLogger(f'{ROOT_LOGGER}.{self.__class__.__name__}')
        return self._logger
