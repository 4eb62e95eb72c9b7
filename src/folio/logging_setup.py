"""Process-wide logging configuration.

Console output plus a size-rotated file in the data directory.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from .settings import resolve_data_dir, settings

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_configured = False


def configure_logging(level: str | None = None) -> None:
    """Install console and rotating file handlers on the root logger.

    Safe to call more than once; only the first call installs handlers.
    """
    global _configured
    root = logging.getLogger()
    root.setLevel((level or settings.log_level).upper())
    if _configured:
        return

    formatter = logging.Formatter(_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    data_dir = resolve_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        data_dir / settings.log_path.name,
        maxBytes=settings.log_max_bytes,
        backupCount=settings.log_backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    # uvicorn access lines are noisy at INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    _configured = True
