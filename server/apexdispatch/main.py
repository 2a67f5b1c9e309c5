import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from apexdispatch.config import Settings, get_settings
from apexdispatch.deps import build_coordinator
from apexdispatch.exceptions import InvalidStateError, NotFoundError, ValidationError
from apexdispatch.routes import orders, telegram, whatsapp
from apexdispatch.services.coordinator import OrderCoordinator

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


def create_app(
    coordinator: Optional[OrderCoordinator] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "coordinator", None) is None:
            app.state.coordinator = build_coordinator(settings)
        coord: OrderCoordinator = app.state.coordinator
        reminders = asyncio.create_task(coord.scheduler.run_forever(settings.REMINDER_POLL_SECONDS))
        logger.info("Reminder loop started (every %ss)", settings.REMINDER_POLL_SECONDS)
        try:
            yield
        finally:
            reminders.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reminders
            await coord.aclose()
            logger.info("Shutdown complete; ledger drained.")

    app = FastAPI(title=settings.APP_NAME, version="1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.coordinator = coordinator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Requested-With"],
        expose_headers=["Content-Disposition"],  # CSV download
    )

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError):
        return _error(400, str(exc))

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError):
        fields = [".".join(str(p) for p in err["loc"][1:]) for err in exc.errors()]
        return _error(400, f"Invalid request fields: {', '.join(fields)}")

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError):
        return _error(404, str(exc))

    @app.exception_handler(InvalidStateError)
    async def _invalid_state(request: Request, exc: InvalidStateError):
        return _error(409, str(exc))

    # Routers
    app.include_router(orders.router, prefix=settings.API_PREFIX, tags=["orders"])
    app.include_router(telegram.router, prefix=settings.API_PREFIX, tags=["telegram"])
    app.include_router(whatsapp.router, prefix=settings.API_PREFIX, tags=["whatsapp"])

    # Health & root
    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/")
    def root():
        return {"ok": True, "docs": "/docs"}

    return app


app = create_app()
