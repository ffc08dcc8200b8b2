"""
Logging configuration for non-debug deployments
"""
import logging
import sys
from pathlib import Path
from halan.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Loggers that are too chatty at INFO
QUIET_LOGGERS = (
    "uvicorn.access",
    "sqlalchemy.engine",
    "halan.services.fleet_hub",  # one line per location ping
)


def _handler(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    return handler


def setup_logging(log_dir: str = None) -> logging.Logger:
    """
    Attach console and file handlers to the root logger.

    Errors go to error.log as well as app.log. Calling it twice is harmless,
    handlers are only attached once.
    """
    root_logger = logging.getLogger()
    if getattr(root_logger, "_halan_configured", False):
        return root_logger

    logs_dir = Path(log_dir or settings.LOG_DIR)
    logs_dir.mkdir(exist_ok=True)

    root_logger.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)
    root_logger.addHandler(_handler(logging.StreamHandler(sys.stdout), logging.INFO))
    root_logger.addHandler(_handler(logging.FileHandler(logs_dir / "error.log"), logging.ERROR))
    root_logger.addHandler(_handler(logging.FileHandler(logs_dir / "app.log"), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger._halan_configured = True
    return root_logger
