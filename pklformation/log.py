"""Console and file logging for pklformation."""

from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

# stdout carries the template when no output file is given
console = Console(stderr=True)

ROOT_LOGGER = "pklformation"


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the pklformation namespace.

    Handlers are attached once, to the package root logger, by setup_logging().
    """
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


def setup_logging(verbose: bool = False, log_file: str | Path | None = None) -> logging.Logger:
    """Configure the package root logger.

    Args:
        verbose: Enable debug-level console logging (default is warnings only)
        log_file: Optional path of a log file that records debug-level detail

    Calling it again replaces the handlers installed by a previous call.
    """
    root_logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    console_handler = RichHandler(console=console, show_path=False, show_time=False)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root_logger.addHandler(console_handler)

    if log_file:
        target = Path(log_file)
        target.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(target, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(name)s | %(levelname)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        file_handler.setLevel(logging.DEBUG)
        root_logger.addHandler(file_handler)

    root_logger.setLevel(logging.DEBUG)
    return root_logger
