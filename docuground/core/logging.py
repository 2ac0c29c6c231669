from __future__ import annotations

import logging

from docuground.core.config import Settings


_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(settings: Settings) -> None:
    # Scripts call this once; library modules only ever use getLogger(__name__).
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, format=_LOG_FORMAT)
    # httpx logs every request at INFO, which drowns ingestion progress.
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
