"""
Logging setup shared by the import pipeline and the HTTP layer.

Every module logs through ``logging.getLogger(__name__)``; this module only
installs the handlers once so library use (no FastAPI app) and server use
end up with the same line format.
"""
from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Iterable, Optional


PIPELINE_LOGGER = "tracker"
LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"

# Third-party loggers that are chatty at INFO during uploads.
NOISY_LOGGERS = ("multipart", "httpx")

_is_configured = False


def configure_logging(
    level: Optional[str] = None,
    *,
    force: bool = False,
    quiet_loggers: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """
    Install the console handler for the root and pipeline loggers.

    Args:
        level: Log level name (e.g. "DEBUG"); defaults to INFO.
        force: Reconfigure even if logging was already set up (used by tests).
        quiet_loggers: Logger names capped at WARNING regardless of ``level``.
    """
    global _is_configured

    if _is_configured and not force:
        return

    log_level = (level or "INFO").upper()

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {
                    "format": LOG_FORMAT,
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "standard",
                    "level": log_level,
                }
            },
            "root": {
                "handlers": ["console"],
                "level": log_level,
            },
            "loggers": {
                name: {"level": "WARNING"} for name in quiet_loggers
            },
        }
    )

    logging.getLogger(PIPELINE_LOGGER).setLevel(log_level)

    _is_configured = True
