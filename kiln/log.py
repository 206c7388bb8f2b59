"""Logging setup for Kiln.

Modules log through ``logging.getLogger(__name__)``; the CLI calls
``setup_logging`` once to install a colored console handler.

The ``KILN_LOG_LEVEL`` environment variable (a level name like ``DEBUG`` or
a number) overrides the level chosen on the command line.
"""

from __future__ import annotations

import logging
import os

import click

LOG_LEVEL_ENV = "KILN_LOG_LEVEL"

LOG_FORMAT = "[%(levelname)s] %(message)s"
DEBUG_LOG_FORMAT = "[%(levelname)s] [%(name)s:%(lineno)d] %(message)s"

_LEVEL_COLORS = (
    (logging.ERROR, "red"),
    (logging.WARNING, "yellow"),
    (logging.INFO, "green"),
    (logging.DEBUG, "bright_black"),
)


class ColorFormatter(logging.Formatter):
    """Formatter that colors each record by its severity."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for level, color in _LEVEL_COLORS:
            if record.levelno >= level:
                return click.style(message, fg=color, bold=record.levelno >= logging.CRITICAL)
        return message


class ClickHandler(logging.Handler):
    """Writes records to stderr through ``click.echo``.

    The stream is looked up on every record, so output follows whatever
    stderr is current (including ``CliRunner``'s captured one).
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            click.echo(self.format(record), err=True)
        except Exception:
            self.handleError(record)


def resolve_env_log_level() -> int | None:
    """Return a logging level from ``KILN_LOG_LEVEL``, or None if unset or invalid."""
    value = os.environ.get(LOG_LEVEL_ENV, "").strip().upper()
    if not value:
        return None
    if value.isdigit():
        return int(value)
    level = logging.getLevelName(value)
    return level if isinstance(level, int) else None


def setup_logging(level: int = logging.WARNING) -> None:
    """Configure the ``kiln`` logger with a colored console handler.

    Calling this again replaces the handler instead of adding another.

    Args:
        level: Level used unless ``KILN_LOG_LEVEL`` is set.
    """
    env_level = resolve_env_log_level()
    if env_level is not None:
        level = env_level

    logger = logging.getLogger("kiln")
    logger.setLevel(level)
    for handler in logger.handlers[:]:
        if isinstance(handler, ClickHandler):
            logger.removeHandler(handler)

    handler = ClickHandler()
    handler.setFormatter(ColorFormatter(LOG_FORMAT if level >= logging.INFO else DEBUG_LOG_FORMAT))
    logger.addHandler(handler)
