import logging
from pathlib import Path
from typing import List

from .config import LoggingSettings


def setup_logging(logging_settings: LoggingSettings) -> None:
    """Configure the root logger from the logging section of the settings."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]

    if logging_settings.file:
        log_file = Path(logging_settings.file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, logging_settings.level),
        format=logging_settings.format,
        handlers=handlers,
        force=True,
    )
    # uvicorn logs every request at INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
