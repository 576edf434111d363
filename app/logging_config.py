"""Logging setup for the API process and scheduled scans."""

import logging
import sys

from app import config


def setup_logging(level: str | None = None) -> None:
    """
    Configure the root logger once for the whole process.

    Args:
        level: Log level name; defaults to LOG_LEVEL from the environment
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, (level or config.LOG_LEVEL).upper(), logging.INFO))

    # Clear existing handlers (uvicorn reload re-imports main)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    ))
    root_logger.addHandler(console_handler)

    # Google client libraries are chatty at INFO
    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)
    logging.getLogger("googleapiclient.discovery").setLevel(logging.WARNING)
