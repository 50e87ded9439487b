"""Logging configuration for the watcher."""

import logging

from rich.console import Console
from rich.logging import RichHandler

err_console = Console(stderr=True)

LOGGER_NAME = "config_watcher"


def setup_logging(verbose: bool = False) -> logging.Logger:
    """Configure the watcher logger with a Rich handler on stderr."""
    logger = logging.getLogger(LOGGER_NAME)

    # Clear existing handlers
    logger.handlers.clear()
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    handler = RichHandler(
        console=err_console,
        show_time=True,
        show_path=verbose,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%Y-%m-%d %H:%M:%S]"))
    logger.addHandler(handler)

    return logger


class ServiceLoggerAdapter(logging.LoggerAdapter):
    """Prefix every record with ``[<service name>]``."""

    def process(self, msg, kwargs):
        return f"[{self.extra['service']}] {msg}", kwargs


def service_logger(name: str) -> ServiceLoggerAdapter:
    """Get a logger whose records carry the service-name prefix."""
    return ServiceLoggerAdapter(logging.getLogger(f"{LOGGER_NAME}.service"), {"service": name})
