"""Shared logging helpers for Namayose."""

import logging


def configure_logging(level: int | str = logging.INFO, force: bool = False) -> None:
    """
    Initialise the root logger once with sensible defaults.

    Pass ``force=True`` to reconfigure during tests or from scripts.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
