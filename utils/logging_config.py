import os
import sys

from loguru import logger

_FORMAT = "{time} | {level} | {message}"

# per-concern log files, routed on extra["log_type"]
_TYPED_SINKS = ("booking", "payment", "admin")


def configure_logging(app):
    level = app.config.get("LOG_LEVEL", "INFO")
    log_dir = app.config.get("LOG_DIR")

    # Remove default handler
    logger.remove()
    logger.add(sys.stderr, level=level, format=_FORMAT)

    if not log_dir:
        return logger

    os.makedirs(log_dir, exist_ok=True)

    # General application log
    logger.add(
        os.path.join(log_dir, "app.log"),
        rotation="1 week",
        retention="4 weeks",
        level=level,
        enqueue=True,
        format=_FORMAT,
    )

    for log_type in _TYPED_SINKS:
        logger.add(
            os.path.join(log_dir, f"{log_type}s.log"),
            rotation="1 week",
            retention="4 weeks",
            level="INFO",
            enqueue=True,
            filter=lambda record, t=log_type: record["extra"].get("log_type") == t,
            format=_FORMAT,
        )

    # Error logs
    logger.add(
        os.path.join(log_dir, "errors.log"),
        rotation="1 week",
        retention="8 weeks",
        level="ERROR",
        enqueue=True,
    )
    return logger


def get_logger():
    return logger
