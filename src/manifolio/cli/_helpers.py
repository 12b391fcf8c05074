"""Shared helpers for manifolio CLI commands.

Centralise the utilities reused across command modules: verbose logging
setup, settings lookup, position parsing and error reporting.
"""

import logging
from typing import NoReturn

import typer

from manifolio.core.config import KellySettings, get_config
from manifolio.core.models import Position


def configure_verbose_logging() -> None:
    """Enable INFO-level logging for recommendation and cache output."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(message)s",
        datefmt="%H:%M:%S",
    )


def load_settings() -> KellySettings:
    """Return the bet sizing settings from the global configuration."""
    return get_config().get_kelly_settings()


def parse_position(value: str) -> Position:
    """Parse a ``probability:payout`` pair into a ``Position``.

    Args:
        value: Text such as ``0.3:20``.

    Returns:
        The parsed position.

    Raises:
        typer.BadParameter: If the text is not a valid pair.

    """
    probability, sep, payout = value.partition(":")
    if not sep:
        msg = f"expected probability:payout, got {value!r}"
        raise typer.BadParameter(msg)
    try:
        return Position(probability=float(probability), payout=float(payout))
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


def fail(exc: Exception) -> NoReturn:
    """Print ``exc`` to stderr and exit with status 1."""
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1) from exc
