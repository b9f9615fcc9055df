"""
Logging Configuration

Plain stdout logging with a single consistent format, shared by the
HTTP service and the maintenance scripts.
"""

import sys
from logging.config import dictConfig

from todonote.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Request lines carry the signed bearer header at DEBUG
QUIET_LOGGERS = ("httpx", "httpcore")


def _console_logger(level: str) -> dict:
    return {"level": level, "handlers": ["console"], "propagate": False}


def setup_logging(level: str | None = None) -> None:
    """
    Route application, server and HTTP client logs to stdout.

    Args:
        level: Application log level; TODONOTE_LOG_LEVEL when omitted.
            Uvicorn stays at INFO and the HTTP client libraries at WARNING
            whatever the application level.

    Note:
        Call once at startup (application lifespan or script entrypoint).
    """
    app_level = (level or settings.LOG_LEVEL).upper()

    loggers = {
        "todonote": _console_logger(app_level),
        "uvicorn": _console_logger("INFO"),
        "uvicorn.access": _console_logger("INFO"),
    }
    loggers.update({name: _console_logger("WARNING") for name in QUIET_LOGGERS})

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,  # Keep loggers created at import
            "formatters": {
                "default": {"format": LOG_FORMAT, "datefmt": DATE_FORMAT},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "stream": sys.stdout,
                    "formatter": "default",
                },
            },
            "root": {"level": app_level, "handlers": ["console"]},
            "loggers": loggers,
        }
    )
