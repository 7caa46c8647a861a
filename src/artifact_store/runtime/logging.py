"""Loguru sink configuration."""

import sys

from loguru import logger

from src.artifact_store.runtime.config.config_data import LoggingConfig

TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def configure_logging(config: LoggingConfig) -> int:
    """Replace the default loguru sink with one matching the configuration.

    Args:
        config: Logging section of the application configuration

    Returns:
        Id of the installed sink
    """
    logger.remove()
    if config.json_output:
        return logger.add(sys.stderr, level=config.level.upper(), serialize=True)
    return logger.add(sys.stderr, level=config.level.upper(), format=TEXT_FORMAT)
