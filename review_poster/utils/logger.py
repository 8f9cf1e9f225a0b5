"""Logging utilities for review-poster."""

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER_NAME = "review_poster"
LOG_DIR = Path.home() / ".review-poster" / "logs"


class ReviewPosterLogger:
    """Named logger whose records go to the shared review_poster handlers."""

    _handlers_setup = False

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        if not ReviewPosterLogger._handlers_setup:
            root_logger = logging.getLogger(ROOT_LOGGER_NAME)
            if not root_logger.handlers:
                self._setup_handlers(root_logger)
            ReviewPosterLogger._handlers_setup = True

    def _setup_handlers(self, logger: logging.Logger) -> None:
        """Rich console handler at INFO, plus a DEBUG log file when the home is writable."""
        console_handler = RichHandler(
            console=Console(stderr=True),
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
        )
        console_handler.setLevel(logging.INFO)
        logger.addHandler(console_handler)

        try:
            LOG_DIR.mkdir(parents=True, exist_ok=True)
        except OSError:
            return

        file_handler = logging.FileHandler(LOG_DIR / "review-poster.log")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        logger.addHandler(file_handler)

    def debug(self, message: str) -> None:
        self.logger.debug(message)

    def info(self, message: str) -> None:
        self.logger.info(message)

    def warning(self, message: str) -> None:
        self.logger.warning(message)

    def error(self, message: str) -> None:
        self.logger.error(message)

    def exception(self, message: str) -> None:
        """Log at ERROR with the active exception's traceback."""
        self.logger.exception(message)


def enable_verbose_logging() -> None:
    """Lower every review_poster logger and the console handler to DEBUG."""
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(logging.DEBUG)

    for name, child_logger in logging.Logger.manager.loggerDict.items():
        if isinstance(child_logger, logging.Logger) and name.startswith(ROOT_LOGGER_NAME):
            child_logger.setLevel(logging.DEBUG)

    for handler in root_logger.handlers:
        if not isinstance(handler, logging.FileHandler):
            handler.setLevel(logging.DEBUG)


def get_logger(name: str) -> ReviewPosterLogger:
    return ReviewPosterLogger(name)
