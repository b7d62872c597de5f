from __future__ import annotations

import logging


def setup_logging(level: str) -> None:
    """Log to stderr so CLI stdout stays clean for piping."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
