"""Logging configuration helpers."""

import logging

_LOGGER_NAME = "meal_planner"


def configure_logging(level: int = logging.INFO) -> None:
    """Configure the meal planner logger with a single stream handler."""
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    if logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s: %(name)s: %(message)s")
    )
    logger.addHandler(handler)
    logger.propagate = False
