# concerndesk/main.py
import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from concerndesk.api.routes import auth, chat, concerns, health, realtime, users
from concerndesk.core.config import Settings
from concerndesk.core.config import settings as default_settings
from concerndesk.core.errors import DomainError
from concerndesk.core.logging import RequestIdMiddleware, install_fatal_handler, log_extra, setup_logging
from concerndesk.db.session import Database
from concerndesk.services.chat import ChatThread
from concerndesk.services.concerns import TicketStore
from concerndesk.services.lifecycle import LifecycleEngine
from concerndesk.services.notifications import NotificationDispatcher, NotificationSink, build_sink
from concerndesk.services.realtime import RealtimeBus

log = logging.getLogger(__name__)


def _validation_message(errors) -> str:
    parts = []
    for err in errors:
        loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path", "form"))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "Validation failed"


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainError)
    async def _domain_error(request: Request, exc: DomainError):
        log.info("domain_error", extra={**log_extra(request), "code": exc.code, "path": request.url.path})
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def _request_validation(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": _validation_message(exc.errors())},
        )

    @app.exception_handler(ValidationError)
    async def _model_validation(request: Request, exc: ValidationError):
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": _validation_message(exc.errors())},
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(IntegrityError)
    async def _integrity_error(request: Request, exc: IntegrityError):
        log.warning("integrity_error", extra={**log_extra(request), "path": request.url.path})
        return JSONResponse(status_code=409, content={"success": False, "message": "Duplicate or conflicting record"})

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception):
        log.exception("unexpected_error", extra={**log_extra(request), "path": request.url.path})
        return JSONResponse(status_code=500, content={"success": False, "message": "Internal server error"})


def create_app(
    settings: Optional[Settings] = None,
    notification_sink: Optional[NotificationSink] = None,
) -> FastAPI:
    settings = settings or default_settings
    setup_logging(settings.log_level)

    db = Database(settings.database_url)
    bus = RealtimeBus(queue_size=settings.ws_queue_size)
    notifier = NotificationDispatcher(notification_sink or build_sink(settings))
    store = TicketStore(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        previous_handler = None
        loop = asyncio.get_running_loop()
        if settings.fatal_on_unhandled:
            previous_handler = install_fatal_handler(loop)
        Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
        if settings.auto_create_schema:
            await db.create_all()
        await bus.start()
        log.info("app_started", extra={"env": settings.env})
        try:
            yield
        finally:
            await bus.close()
            await notifier.aclose()
            await db.dispose()
            if settings.fatal_on_unhandled:
                loop.set_exception_handler(previous_handler)
            log.info("app_stopped")

    app = FastAPI(
        title="ConcernDesk",
        version="0.1.0",
        docs_url="/api/docs",
        redoc_url=None,
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )

    # ==== Сервіси ====
    app.state.settings = settings
    app.state.db = db
    app.state.bus = bus
    app.state.notifier = notifier
    app.state.store = store
    app.state.lifecycle = LifecycleEngine(store, bus, notifier, settings)
    app.state.chat = ChatThread(bus)

    # ==== Middlewares ====
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIdMiddleware)

    _register_exception_handlers(app)

    # ==== API під /api ====
    app.include_router(health.router,   prefix="/api",          tags=["health"])
    app.include_router(auth.router,     prefix="/api/auth",     tags=["auth"])
    app.include_router(users.router,    prefix="/api/users",    tags=["users"])
    app.include_router(concerns.router, prefix="/api/concerns", tags=["concerns"])
    app.include_router(chat.router,     prefix="/api/chat",     tags=["chat"])
    app.include_router(realtime.router, tags=["realtime"])

    # ==== Вкладення ====
    # каталог створюється в lifespan
    app.mount("/uploads", StaticFiles(directory=settings.upload_dir, check_dir=False), name="uploads")

    return app


app = create_app()
