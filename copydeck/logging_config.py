"""
Logging setup for copydeck.

Two sinks exist. The CLI logs to stderr only with --verbose (or
COPYDECK_VERBOSE=1). Every opened store also appends INFO records from the
``copydeck`` logger to ``copydeck-ops.log`` in its directory, so saves and
restores leave a trail even when the console is quiet.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

APP_LOGGER = "copydeck"
OPS_LOG_NAME = "copydeck-ops.log"
OPS_LOG_MAX_BYTES = 1_000_000
OPS_LOG_BACKUPS = 3

# HTTP client libraries log every request at INFO
_NOISY_LOGGERS = ("httpx", "httpcore")


def configure_quiet_mode(quiet: bool = True):
    """Silence HTTP client request logging and warnings when ``quiet``."""
    if not quiet:
        return
    warnings.filterwarnings("ignore")
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _has_stderr_handler(logger: logging.Logger) -> bool:
    return any(
        isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr
        for h in logger.handlers
    )


def enable_debug_mode():
    """Send DEBUG records from copydeck and the HTTP client to stderr."""
    warnings.filterwarnings("default")

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    if not _has_stderr_handler(root):
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(logging.DEBUG)
        console.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)-5s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        ))
        root.addHandler(console)

    for name in (APP_LOGGER,) + _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG)


def ops_log_path(store_path) -> Path:
    return Path(store_path) / OPS_LOG_NAME


def configure_ops_log(store_path) -> logging.Handler:
    """
    Attach the operations log of a store directory.

    Returns the handler; pass it to remove_ops_log() when the store closes.
    """
    path = ops_log_path(store_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        str(path), maxBytes=OPS_LOG_MAX_BYTES, backupCount=OPS_LOG_BACKUPS, encoding="utf-8",
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    app_logger = logging.getLogger(APP_LOGGER)
    app_logger.addHandler(handler)
    # INFO must reach the file even in quiet mode
    if app_logger.level == logging.NOTSET or app_logger.level > logging.INFO:
        app_logger.setLevel(logging.INFO)
    return handler


def remove_ops_log(handler: logging.Handler) -> None:
    """Detach and close a handler returned by configure_ops_log()."""
    logging.getLogger(APP_LOGGER).removeHandler(handler)
    handler.close()
