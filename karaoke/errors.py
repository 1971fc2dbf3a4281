"""Error types + structured error logging (JSON lines to errors.log)."""
import json
import logging
import sys
from datetime import datetime
from typing import Optional

from .config import ERRORS_LOG, OUTPUT_DIR, DEV_MODE

logger = logging.getLogger(__name__)


class KaraokeError(Exception):
    """Base class for everything this package raises on purpose."""


class ValidationError(KaraokeError):
    """A request is missing a required field or has the wrong shape."""


class NetworkError(KaraokeError):
    """Transport failure, timeout or bad HTTP status while scraping."""


class ParseError(KaraokeError):
    """A page carried the data marker but its payload could not be decoded."""


class FileReadError(KaraokeError):
    """A catalogue file could not be read or decoded."""


# Shown to people (scrape summary, /api/health); the full entry goes to errors.log
_FRIENDLY_MESSAGES = {
    "catalogue_load": "{name} could not be loaded; that catalogue is empty.",
    "scrape_page": "Couldn't fetch page {page}, retrying...",
    "scrape_abort": "Gave up on page {page}; kept the {songs} songs scraped so far.",
}


def format_error(stage: str, params: Optional[dict] = None, raw: str = "") -> str:
    """Record a recovered failure in errors.log and return a line for the user.

    With DEV_MODE on, the raw error is appended to the line.
    """
    params = params or {}
    _append_to_log({
        "timestamp": datetime.now().isoformat(),
        "stage": stage,
        "params": params,
        "error": raw,
        "python": sys.version.split()[0],
    })
    logger.error("Error at %s: %s", stage, raw)

    template = _FRIENDLY_MESSAGES.get(stage, "Something went wrong ({stage}).")
    try:
        message = template.format(stage=stage, **params)
    except (KeyError, IndexError):
        message = f"Something went wrong ({stage})."
    if DEV_MODE and raw:
        message = f"{message} [{raw}]"
    return message


def _append_to_log(entry: dict):
    try:
        OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
        with open(ERRORS_LOG, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, ensure_ascii=False) + "\n")
    except OSError as e:
        logger.warning("Could not write %s: %s", ERRORS_LOG, e)
