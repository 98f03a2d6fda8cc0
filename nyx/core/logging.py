"""
Logging utilities for the web application and the sleep digest worker.
"""

import logging
import sys


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with the shared line format."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    # httpx logs every request URL at INFO, which includes OAuth codes.
    logging.getLogger("httpx").setLevel(logging.WARNING)


__all__ = ["configure_logging"]
