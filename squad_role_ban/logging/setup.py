import sys
import logging
from typing import Any

from loguru import logger

from squad_role_ban.config.settings import settings


def sensitive_data_filter(record: dict[str, Any]) -> bool:
    """Filter function to mask secrets in log records."""
    sensitive_keys = ["key", "token", "password", "secret"]

    if record.get("extra"):
        for extra_key, value in record["extra"].items():
            if not any(sk in extra_key.lower() for sk in sensitive_keys):
                continue
            if isinstance(value, str) and len(value) > 8:
                record["extra"][extra_key] = value[:4] + "****" + value[-4:]
            else:
                record["extra"][extra_key] = "********"

    # Known secrets are masked wherever they show up in the message
    for secret in (settings.rcon_bridge_token, settings.supabase_key):
        if secret and secret in record["message"]:
            record["message"] = record["message"].replace(secret, "********")

    return True


class InterceptHandler(logging.Handler):
    """Routes standard logging records (httpx, supabase) into Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging() -> None:
    """Configures Loguru logger based on application settings."""
    logger.remove()

    logger.add(
        sys.stderr,
        level=settings.log_level.upper(),
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
        colorize=True,
        backtrace=True,
        diagnose=True,
        filter=sensitive_data_filter,
    )

    logger.info(f"Logging initialized with level: {settings.log_level}")

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    logger.info("Standard logging intercepted.")
