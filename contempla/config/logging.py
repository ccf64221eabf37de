"""
Logging setup.

Configures loguru sinks for the API process, the scheduler and workers.
"""

import sys
from pathlib import Path

from loguru import logger

from contempla.config.settings import settings


def setup_logging(process_name: str) -> None:
    """
    Configure logger with stderr output and file rotation.

    Args:
        process_name: Used for the log file name (logs/<name>.log)
    """
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)

    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    logger.add(
        log_dir / f"{process_name}.log",
        rotation="1 day",
        retention="7 days",
        level=settings.log_level,
        encoding="utf-8",
    )

    logger.info(f"Starting Contempla {process_name} ({settings.environment})...")
