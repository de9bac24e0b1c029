"""Logging setup shared by the CLI and the web server."""
import logging
import sys
from typing import Optional

from movieclub.app.config import Settings, get_settings

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

# Prevent httpx/httpcore from logging the TMDB api_key query param at DEBUG
_QUIET_LOGGERS = ("httpx", "httpcore")


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure the `movieclub` logger tree with console and file handlers.

    Safe to call more than once; existing handlers are replaced.
    """
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root = logging.getLogger("movieclub")
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    root.addHandler(console)

    settings.log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(settings.log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
