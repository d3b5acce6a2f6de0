"""loguru sink configuration."""

import sys

from loguru import logger

log_format = ' | '.join(
    (
        '<lk>{time:YYYY-MM-DD HH:mm:ss.SSS}</>',
        '<lvl>{level:<8}</>',
        '<c>{name}::{function}:{line}</>',
        '{message}',
    )
)


def setup_logging(level: str = "INFO", log_file: str = "") -> None:
    # drop the default stderr handler so records are not emitted twice
    logger.remove()
    logger.add(sys.stdout, format=log_format, level=level.upper())
    if log_file:
        logger.add(
            log_file,
            format=log_format,
            level=level.upper(),
            rotation='1 day',
            retention='30 days',
            compression='zip',
            enqueue=True,
        )
