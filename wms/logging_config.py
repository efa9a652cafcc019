"""Application-wide logging configuration."""

from __future__ import annotations

import logging
from typing import Optional

from rich.logging import RichHandler

from wms.settings import load_settings


def setup_logging(level: Optional[str] = None) -> None:
    """Installs a single RichHandler on the root logger."""
    level_name = (level or load_settings().log_level).upper()
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))

    if any(isinstance(h, RichHandler) for h in root_logger.handlers):
        return

    rich_handler = RichHandler(
        show_time=True,
        show_level=True,
        show_path=False,
        markup=False,
        tracebacks_word_wrap=True,
    )
    root_logger.handlers = [rich_handler]

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
