from __future__ import annotations

import logging


def configure_app_logging(level: str = "INFO") -> None:
    """
    Set the level for the `authz_engine` logger tree.

    Notes:
    - Plain stdlib logging; handlers come from the host (uvicorn, pytest, ...).
    - Permission decisions log at DEBUG, cache invalidations at INFO and
      degraded store reads at WARNING. Set `AUTHZ_LOG_LEVEL=DEBUG` to trace decisions.
    """

    normalized = level.upper()
    logging.getLogger("authz_engine").setLevel(normalized)
    logging.getLogger("authz_engine").propagate = True
