"""Loguru sinks for the service."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger


def setup_logger(log_level: str = "INFO", log_file: str | None = None) -> None:
    """Configure loguru.

    - Console: coloured, with the correlation id when one is bound
    - File (optional): plain, rotating, compressed
    """
    logger.remove()
    logger.configure(extra={"correlation_id": "-"})

    logger.add(
        sys.stderr,
        level=log_level,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<magenta>{extra[correlation_id]}</magenta> | "
            "<cyan>{name}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
        colorize=True,
    )

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level=log_level,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[correlation_id]} | "
                "{name}:{line} - {message}"
            ),
            rotation="10 MB",
            retention="7 days",
            compression="zip",
            enqueue=True,
        )

    logger.info("Logger initialised | level={} | file={}", log_level, log_file)
