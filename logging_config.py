"""Logging setup for the simulation modules and the viewer."""

from __future__ import annotations

import logging
import sys

ENGINE_LOGGERS = (
    "parcel_utils",
    "depth_utils",
    "geometry_utils",
    "loss_zone",
    "reconciliation",
    "cement_simulation",
)


def setup_logging(level: int = logging.INFO, log_file: str | None = None) -> None:
    """Attach console (and optionally file) handlers to the engine loggers.

    Existing handlers are cleared first so repeated calls, e.g. on a
    Streamlit rerun, do not duplicate records.
    """

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="w", encoding="utf-8"))
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)

    for name in ENGINE_LOGGERS:
        logger = logging.getLogger(name)
        logger.setLevel(level)
        if logger.hasHandlers():
            logger.handlers.clear()
        for handler in handlers:
            logger.addHandler(handler)
        logger.propagate = False

    logging.getLogger("cement_simulation").info("Logging initialised.")


__all__ = ["setup_logging", "ENGINE_LOGGERS"]
