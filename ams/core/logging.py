"""Logging setup shared by the API service and the CLI."""

from __future__ import annotations

import logging

from ams.core.config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(settings: Settings, level: str | None = None) -> None:
    """Configure root logging once for the process.

    Args:
        settings: Application settings providing the default level.
        level: Optional override (e.g. from a CLI flag).
    """
    name = (level or settings.log_level or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, name, logging.INFO),
        format=LOG_FORMAT,
    )
    # httpx logs every request at INFO; keep it quiet unless debugging.
    if not settings.debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
