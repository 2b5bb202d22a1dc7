import json
import logging
import os
import sys
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger

from app.utils.context import get_request_id

DEFAULT_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[request_id]}</cyan> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - "
    "<level>{message}</level>"
)

# Standard library loggers routed through loguru
INTERCEPTED_LOGGERS = (
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "fastapi",
    "celery",
    "httpx",
    "sqlalchemy.engine",
)


class InterceptHandler(logging.Handler):
    """Forward standard `logging` records to loguru with the current request ID."""

    def emit(self, record: logging.LogRecord):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip logging's own frames so loguru reports the real caller
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.bind(request_id=get_request_id() or "app").opt(
            depth=depth, exception=record.exc_info
        ).log(level, record.getMessage())


class CustomizeLogger:
    @classmethod
    def make_logger(cls, config_path: Path, environment: str = "logger"):
        config = cls.load_logging_config(config_path)
        section: Dict[str, Any] = config.get(environment) or config.get("logger") or {}

        filename = section.get("filename")
        return cls.customize_logging(
            log_dir=section.get("log_dir"),
            filename=f"{date.today():%Y-%m-%d}-{filename}" if filename else None,
            level=os.getenv("LOG_LEVEL", section.get("level", "info")),
            rotation=section.get("rotation", "20 MB"),
            retention=section.get("retention", "14 days"),
            console_format=section.get("console_format", DEFAULT_CONSOLE_FORMAT),
            file_format=section.get("file_format", DEFAULT_CONSOLE_FORMAT),
            use_json_logs=section.get("use_json_logs", False),
        )

    @classmethod
    def customize_logging(
        cls,
        log_dir: Optional[str],
        filename: Optional[str],
        level: str,
        rotation: str,
        retention: str,
        console_format: str,
        file_format: str,
        use_json_logs: bool = False,
    ):
        level = level.upper()
        logger.remove()
        logger.configure(extra={"request_id": "app"})

        logger.add(
            sys.stdout,
            enqueue=True,
            backtrace=True,
            level=level,
            format=console_format,
            colorize=True,
        )

        if log_dir and filename:
            file_options: Dict[str, Any] = {
                "rotation": rotation,
                "retention": retention,
                "enqueue": True,
                "backtrace": True,
                "level": level,
                "colorize": False,
            }
            if use_json_logs and file_format == "json":
                file_options["serialize"] = True
            else:
                file_options["format"] = file_format
            logger.add(str(Path(log_dir) / filename), **file_options)

        logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
        for name in INTERCEPTED_LOGGERS:
            logging.getLogger(name).handlers = [InterceptHandler()]

        return logger

    @staticmethod
    def load_logging_config(config_path: Path) -> Dict[str, Any]:
        # Console-only logging when no config file ships with the deployment
        if not config_path.exists():
            return {}
        with open(config_path) as config_file:
            return json.load(config_file)


config_path = Path(
    os.getenv(
        "LOGGING_CONFIG_PATH",
        Path(__file__).resolve().parents[2] / "logging_config.json",
    )
)
environment = "production" if os.getenv("ENVIRONMENT") == "production" else "logger"
custom_logger = CustomizeLogger.make_logger(config_path, environment)


def get_logger():
    """Get the custom logger instance with request ID binding."""
    return custom_logger.bind(request_id=get_request_id() or "app")
