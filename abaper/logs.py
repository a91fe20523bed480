"""Logging setup for programs built on abaper."""

import logging
import sys
from typing import List, Optional

FORMAT = "%(asctime)s %(name)-18s %(levelname)-5s %(message)s"


def setup_logging(level: str = "WARNING", log_file: Optional[str] = None) -> None:
    """Configure Python logging to stderr and, optionally, a file.

    Args:
        level: Level name, e.g. ``"DEBUG"``; unknown names fall back to INFO
        log_file: Extra file to log to
    """
    numeric = getattr(logging, level.upper(), logging.INFO)

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(level=numeric, format=FORMAT, handlers=handlers, force=True)
    # Request lines from httpx would repeat URLs with lock handles at INFO.
    logging.getLogger("httpx").setLevel(max(numeric, logging.WARNING))
