"""Logging configuration for the gait analysis core."""
import logging
import sys
from typing import Optional

from loguru import logger
from .settings import Settings, settings as default_settings

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


class InterceptHandler(logging.Handler):
    """Intercept standard logging messages toward Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        """Emit log record to Loguru."""
        # Get corresponding Loguru level if it exists
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(config: Optional[Settings] = None) -> None:
    """Configure logging for gait analysis.

    Development gets colourized console output. Other environments log JSON
    lines so ride sessions can be replayed from the logs. When ``log_file``
    is set, a rotating JSON file sink is added as well.

    Args:
        config: Settings to read environment, level and log file from,
            defaults to the module-level settings instance
    """
    config = config or default_settings
    development = config.environment == "development"

    logger.remove()
    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level=config.log_level,
        colorize=development,
        serialize=not development,
        backtrace=development,
        diagnose=development,
    )

    if config.log_file:
        logger.add(
            config.log_file,
            level=config.log_level,
            serialize=True,
            rotation=config.log_rotation,
            retention=config.log_retention,
            enqueue=True,
        )

    # Model modules use standard logging
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    logger.info("Logging configured",
                environment=config.environment,
                level=config.log_level,
                log_file=config.log_file)
