from __future__ import annotations

import logging


def configure_app_logging(level: str = "INFO") -> None:
    """
    Minimal logging configuration for this repo.

    Notes:
    - Stdlib logging only; uvicorn and celery install their own handlers.
    - This sets the level for the `orgauthz` package; child loggers inherit it.
    - Set `APP_LOG_LEVEL=DEBUG` to see every authorization verdict.
    """

    normalized = level.upper()
    package_logger = logging.getLogger("orgauthz")
    package_logger.setLevel(normalized)
    package_logger.propagate = True
