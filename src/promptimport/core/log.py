# src/promptimport/core/log.py
import os

from loguru import logger

from .config import Settings

_file_sink_id: int | None = None


def configure_logging(settings: Settings) -> str:
    """
    Add the rotating application log sink. Safe to call more than once;
    the sink is only registered the first time.
    """
    global _file_sink_id
    log_dir = os.path.abspath(settings.LOG_DIR)
    log_path = os.path.join(log_dir, "app.log")
    if _file_sink_id is not None:
        return log_path

    os.makedirs(log_dir, exist_ok=True)
    _file_sink_id = logger.add(
        log_path,
        level=settings.LOG_LEVEL,
        rotation="10 MB",
        retention="10 days",
        enqueue=True,
    )
    logger.info("Logging to {}", log_path)
    return log_path
