"""
Utility functions for Parley.
"""

import logging
import os
from typing import TYPE_CHECKING, Optional

from rich.console import Console

if TYPE_CHECKING:
    from .config import ParleyConfig

console = Console()

# Package logger, configured by setup_logging()
logger = logging.getLogger("parley")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(config: "ParleyConfig"):
    """Setup logging based on configuration"""
    # Clear any existing handlers
    logger.handlers.clear()

    level_map = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }
    level = level_map[config.logging.level.value]
    logger.setLevel(logging.DEBUG if config.logging.verbose else level)

    if config.logging.log_to_console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(console_handler)

    if config.logging.log_to_file:
        log_dir = os.path.dirname(config.logging.log_file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(config.logging.log_file_path)
        file_handler.setLevel(logging.DEBUG)  # Always log everything to file
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)

    if not logger.handlers:
        # Keep records away from the root logger's last-resort handler
        logger.addHandler(logging.NullHandler())


def log_info(message: str, verbose_only: bool = False, config: Optional["ParleyConfig"] = None):
    """Log info message. If verbose_only=True, only shows in verbose mode."""
    if not verbose_only or (config and config.logging.verbose):
        console.print(f"[bold cyan]ℹ️  {message}[/bold cyan]")
        logger.info(message)


def log_success(message: str, verbose_only: bool = False, config: Optional["ParleyConfig"] = None):
    """Log success message. If verbose_only=True, only shows in verbose mode."""
    if not verbose_only or (config and config.logging.verbose):
        console.print(f"[bold green]✅ {message}[/bold green]")
        logger.info(f"SUCCESS: {message}")


def log_warning(message: str, verbose_only: bool = False, config: Optional["ParleyConfig"] = None):
    """Log warning message. If verbose_only=True, only shows in verbose mode."""
    if not verbose_only or (config and config.logging.verbose):
        console.print(f"[bold yellow]⚠️  {message}[/bold yellow]")
        logger.warning(message)


def log_error(message: str, verbose_only: bool = False, config: Optional["ParleyConfig"] = None):
    """Log error message. If verbose_only=True, only shows in verbose mode."""
    if not verbose_only or (config and config.logging.verbose):
        console.print(f"[bold red]❌ {message}[/bold red]")
        logger.error(message)
