"""Logging configuration for the backlink analyzer service."""

import logging

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(level_name: str = "INFO") -> None:
    """Configure root logging once; later calls only adjust the level."""
    level = getattr(logging, level_name.upper(), logging.INFO)
    root_logger = logging.getLogger()

    if root_logger.handlers:
        root_logger.setLevel(level)
        for handler in root_logger.handlers:
            handler.setLevel(level)
        return

    logging.basicConfig(level=level, format=LOG_FORMAT)
