"""
Logging setup and request logging middleware

Every request gets a trace id (X-Request-ID when the caller sends one) that is
bound to all log lines emitted while it is handled and echoed as X-Trace-Id.
Query strings are never logged: they carry authorization codes, state values
and access tokens.
"""
# mypy: ignore-errors

import os
import sys
import time
import uuid
from collections.abc import Callable

from fastapi import Request, Response
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

_EXTRA_DEFAULTS = {"trace_id": "-", "method": "-", "path": "-", "client": "-"}

_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "trace_id={extra[trace_id]} | "
    "{extra[method]} {extra[path]} | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

_FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | trace_id={extra[trace_id]} | "
    "{extra[method]} {extra[path]} | {name}:{function}:{line} | {message}"
)

# (path, rotation, minimum level); None means the configured level
_FILE_SINKS = (
    ("logs/app.log", "100 MB", None),
    ("logs/error.log", "50 MB", "ERROR"),
)


def _level_for_status(status_code: int) -> str:
    if status_code >= 500:
        return "ERROR"
    if status_code >= 400:
        return "WARNING"
    return "INFO"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs request start and completion under a per-request trace id"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        context = {
            "trace_id": request.headers.get("X-Request-ID") or uuid.uuid4().hex,
            "method": request.method,
            "path": request.url.path,
            "client": request.client.host if request.client else "unknown",
        }
        request.state.trace_id = context["trace_id"]
        log = logger.bind(**context)
        log.info("request.start")

        try:
            with logger.contextualize(**context):
                response = await call_next(request)
        except Exception as e:
            elapsed = time.perf_counter() - started
            log.opt(exception=True).error(f"request.failed duration={elapsed:.3f}s error={type(e).__name__}")
            raise

        elapsed = time.perf_counter() - started
        log.log(
            _level_for_status(response.status_code),
            f"request.completed status={response.status_code} duration={elapsed:.3f}s",
        )
        response.headers["X-Trace-Id"] = context["trace_id"]
        response.headers["X-Process-Time"] = f"{elapsed:.6f}"
        return response


def setup_logging(level: str = "INFO", log_to_file: bool = False):
    """
    Configure loguru: a colored stderr sink, plus rotating files under logs/
    when `log_to_file` is set and the directory is writable.
    """
    level = level.upper()
    logger.configure(extra=_EXTRA_DEFAULTS)
    logger.remove()
    logger.add(sink=sys.stderr, format=_CONSOLE_FORMAT, level=level, colorize=True)

    if log_to_file:
        try:
            os.makedirs("logs", exist_ok=True)
            for path, rotation, sink_level in _FILE_SINKS:
                logger.add(
                    path,
                    rotation=rotation,
                    retention="30 days",
                    compression="zip",
                    format=_FILE_FORMAT,
                    level=sink_level or level,
                )
        except OSError as e:
            logger.warning(f"File logging disabled: {e}")

    logger.info(f"Logging initialised (level={level}, files={'on' if log_to_file else 'off'})")
