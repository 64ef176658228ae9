"""Loguru sink configuration for the evaluation pipeline."""

import os
import sys
from pathlib import Path

from loguru import logger


LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def setup_logging(
    level: str | None = None,
    log_file: str | None = None,
    rotation: str = "10 MB",
    retention: int = 5,
) -> None:
    """Replace loguru's default sink with stderr plus an optional rotating file.

    Args:
        level: Minimum level (defaults to LOG_LEVEL env var, then INFO)
        log_file: Optional path for a rotating file sink
        rotation: Size/time threshold passed to loguru's rotation
        retention: Number of rotated files to keep
    """
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file, level=level, rotation=rotation, retention=retention,
            encoding="utf-8", enqueue=True,
        )
        logger.info(f"Logging to {log_file} (level={level}, rotation={rotation})")
