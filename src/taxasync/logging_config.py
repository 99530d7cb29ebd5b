"""Logging setup for TaxaSync."""

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure root logging with a console handler and an optional file handler.

    Args:
        log_level: Name of the logging level (DEBUG, INFO, ...)
        log_file: Optional path of a file that receives the same records
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)

    # Connection pool chatter drowns out per-name warnings at DEBUG
    logging.getLogger("urllib3").setLevel(max(level, logging.INFO))
