import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import auth, estimates, health, reports, timers
from .core.config import Settings, get_settings
from .core.errors import (
    ConstraintViolation, InvalidInput, NotAuthenticated, ReportLoadError,
    TrackerError, TransientIOError,
)
from .core.logging import configure_logging
from .db.database import Database

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = {
    InvalidInput: 422,
    ConstraintViolation: 409,
    ReportLoadError: 503,
    TransientIOError: 503,
    NotAuthenticated: 401,
}

def _status_for(exc: TrackerError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return 500

def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Card Time Tracker")
    app.state.settings = settings
    app.state.db = None

    if settings.frontend_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.frontend_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.on_event("startup")
    async def _startup():
        if app.state.db is None:
            app.state.db = Database(settings.dsn, echo=settings.sql_echo)
        await app.state.db.init()
        logger.info("database ready at %s", settings.dsn)

    @app.on_event("shutdown")
    async def _shutdown():
        if app.state.db is not None:
            await app.state.db.dispose()

    @app.exception_handler(TrackerError)
    async def _tracker_error(request: Request, exc: TrackerError):
        code = _status_for(exc)
        if code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=code, content={"detail": str(exc), "code": exc.code})

    # API routers
    app.include_router(auth.router, prefix="/api")
    app.include_router(auth.me_router, prefix="/api")
    app.include_router(timers.router, prefix="/api")
    app.include_router(estimates.router, prefix="/api")
    app.include_router(reports.router, prefix="/api")
    app.include_router(health.router, prefix="/api")
    return app

app = create_app()
