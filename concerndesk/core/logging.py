# concerndesk/core/logging.py
import asyncio
import logging
import logging.config
import os
import signal
import uuid
from typing import Any, Mapping

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

log = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Єдина конфігурація логів для апки, воркера та Uvicorn."""
    LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "plain": {"format": LOG_FORMAT},
        },
        "handlers": {
            "default": {"class": "logging.StreamHandler", "formatter": "plain"},
        },
        "loggers": {
            "": {"handlers": ["default"], "level": level},
            "uvicorn": {"handlers": ["default"], "level": level, "propagate": False},
            "uvicorn.error": {"handlers": ["default"], "level": level, "propagate": False},
            "uvicorn.access": {"handlers": ["default"], "level": level, "propagate": False},
            "rq.worker": {"handlers": ["default"], "level": level, "propagate": False},
        },
    })


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Проброс/створення X-Request-ID для трейсингу запитів:
    - читає з вхідного заголовка (якщо є),
    - інакше генерує,
    - додає в response headers і в request.state.
    """

    header_name = "X-Request-ID"

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(self.header_name, str(uuid.uuid4()))
        request.state.request_id = request_id

        response: Response = await call_next(request)
        response.headers[self.header_name] = request_id
        return response


def log_extra(request: Request) -> Mapping[str, Any]:
    """
    Хелпер для роутерів:
    log.info("concern_created", extra={**log_extra(request), "ticket_id": ...})
    """
    rid = getattr(request.state, "request_id", None)
    return {"request_id": rid} if rid else {}


def install_fatal_handler(loop: asyncio.AbstractEventLoop):
    """
    Необроблена помилка у фоновій asyncio-задачі вважається фатальною:
    логуємо і шлемо собі SIGTERM (uvicorn коректно завершиться).
    Повертає попередній handler, щоб lifespan міг його відновити.
    """
    previous = loop.get_exception_handler()

    def _handler(loop: asyncio.AbstractEventLoop, context: dict) -> None:
        exc = context.get("exception")
        log.critical(
            "unhandled_async_error: %s", context.get("message"),
            exc_info=exc if isinstance(exc, BaseException) else None,
        )
        os.kill(os.getpid(), signal.SIGTERM)

    loop.set_exception_handler(_handler)
    return previous
