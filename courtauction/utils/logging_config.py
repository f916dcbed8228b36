import logging
import sys
from pathlib import Path

from loguru import logger

from courtauction.utils.logging_utils import add_optional_sinks, env_log_level

NOISY_LOGGERS = ("playwright", "asyncio", "urllib3")


class InterceptHandler(logging.Handler):
    """Intercept standard logging and redirect to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def configure_logger(
    log_file: str = "court_auction.log",
    level: str | None = None,
    log_dir: str = "logs",
    run_id: str | None = None,
):
    """
    Configure loguru logger for the entire project.

    ``run_id`` names the optional JSON sink so each run gets its own file.
    """
    level = level or env_log_level()
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    # Remove default handler to avoid duplicate logs
    logger.remove()

    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=level
    )

    logger.add(
        log_path / log_file,
        rotation="10 MB",
        retention="10 days",
        level=level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {extra} - {message}",
        backtrace=True,
        diagnose=True
    )

    add_optional_sinks(run_id=run_id, log_dir=log_path)

    # Playwright and asyncio log through the stdlib
    logging.basicConfig(handlers=[InterceptHandler()], level=logging.INFO, force=True)
    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).handlers = [InterceptHandler()]
        logging.getLogger(logger_name).propagate = False
