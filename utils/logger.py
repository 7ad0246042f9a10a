"""Logging setup shared by the HTTP API, Socket.IO handlers, and CLI jobs."""
import logging
import os
from logging.handlers import RotatingFileHandler

from flask import has_request_context, request

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(module)s:%(lineno)d | %(request_ref)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

# Socket.IO and Engine.IO are chatty at INFO (one line per packet).
QUIET_LOGGERS = ("socketio", "engineio", "werkzeug")


class RequestContextFilter(logging.Filter):
    """Tag each record with the request method and path, or ``-`` outside a request."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            record.request_ref = f"{request.method} {request.path}"
        else:
            record.request_ref = "-"
        return True


def _handler(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    handler.addFilter(RequestContextFilter())
    return handler


def init_logging(app) -> logging.Logger:
    log_dir = app.config.get("LOG_DIR") or os.path.join(app.instance_path, "logs")
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, "app.log")

    level_name = (app.config.get("LOG_LEVEL") or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    logger = logging.getLogger(app.name)
    logger.setLevel(level)
    # create_app may run more than once per process (tests); avoid stacking handlers.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.addHandler(_handler(RotatingFileHandler(log_path, maxBytes=5_000_000, backupCount=5, encoding="utf-8"), level))
    logger.addHandler(_handler(logging.StreamHandler(), level))
    logger.propagate = False

    app.logger.handlers = logger.handlers
    app.logger.setLevel(level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logger.info("Logging initialized", extra={"path": log_path, "level": level_name})
    return logger
