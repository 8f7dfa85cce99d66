"""Shared logging helpers for donorlens."""

from __future__ import annotations

import logging


def configure_logging(*, level: int = logging.INFO, force: bool = False) -> None:
    """Initialise the root logger with a terse CLI-friendly format.

    ``force=True`` replaces handlers that are already installed.
    """

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
    # per-request httpx lines only at WARNING and above
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
