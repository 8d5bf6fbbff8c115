import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError

from apps.api.routes import admin, merchant, notifications, orders
from core import database
from core.cache import build_order_cache
from core.config import Settings, get_settings
from core.database import SessionFactory
from core.exceptions import AppError
from core.log_config import setup_logging
from core.telemetry import instrument_app, setup_telemetry
from domains.expiry.scheduler import ExpiryScheduler
from domains.notification.callback import MerchantNotifier

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    scheduler: Optional[ExpiryScheduler] = app.state.scheduler
    if scheduler is not None:
        scheduler.start()
    logger.info(" 🚀 API started")
    yield
    if scheduler is not None:
        await scheduler.stop()
    if app.state.cache is not None:
        await app.state.cache.close()
    logger.info(" 👋 API stopped")


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f" ❌ {request.method} {request.url.path}: {exc}")
            return JSONResponse(
                status_code=500, content={"message": "Internal Server Error"}
            )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {
                "field": ".".join(
                    str(p) for p in error["loc"] if p not in ("body", "query", "path")
                ),
                "message": error["msg"],
            }
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=400, content={"message": "Validation error", "errors": errors}
        )

    @app.exception_handler(SQLAlchemyError)
    async def handle_storage_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error(f" ❌ Storage error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"message": "Internal Server Error"})


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[SessionFactory] = None,
) -> FastAPI:
    """
    Composition root: settings, DB sessions, cache, notifier and the expiry
    scheduler are built here and hung on app.state.
    """
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(title="UPI Collect", version="1.0.0", lifespan=lifespan)

    app.state.settings = settings
    app.state.session_factory = session_factory or database.async_session
    app.state.cache = build_order_cache(
        settings.REDIS_URL, settings.ORDER_CACHE_TTL_SECONDS
    )
    app.state.notifier = MerchantNotifier(timeout=settings.CALLBACK_TIMEOUT_SECONDS)
    app.state.scheduler = (
        ExpiryScheduler(
            app.state.session_factory,
            late_window_seconds=settings.LATE_WINDOW_SECONDS,
            interval_seconds=settings.EXPIRY_SWEEP_INTERVAL_SECONDS,
            cache=app.state.cache,
            notifier=app.state.notifier,
        )
        if settings.SCHEDULER_ENABLED
        else None
    )

    register_exception_handlers(app)
    app.include_router(orders.router)
    app.include_router(notifications.router)
    app.include_router(merchant.router)
    app.include_router(admin.router)

    qr_dir = Path(settings.UPLOAD_DIR) / "qr"
    app.mount("/uploads/qr", StaticFiles(directory=qr_dir, check_dir=False), name="qr")

    @app.get("/health", tags=["health"])  # type: ignore
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    if settings.OTEL_ENABLED:
        setup_telemetry(settings.SERVICE_NAME, settings.OTEL_EXPORTER_OTLP_ENDPOINT)
        instrument_app(app, database.engine)

    return app


app = create_app()
