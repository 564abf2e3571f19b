"""Logging setup for lambda-deploy.

Core modules obtain loggers with ``get_logger(__name__)``; only the CLI calls
``setup_logging`` to install handlers.
"""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Third-party loggers that are too chatty at INFO/DEBUG
NOISY_LOGGERS = ("botocore", "boto3", "urllib3", "s3transfer")


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure root logging for a CLI invocation.

    Args:
        verbose: Emit DEBUG messages from lambda-deploy modules
        quiet: Only emit warnings and errors
    """
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    logging.basicConfig(level=level, handlers=[handler], force=True)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return a module logger."""
    return logging.getLogger(name)
