"""FastAPI application factory."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi_pagination import add_pagination

from app.config import get_settings
from app.core.errors import ConstraintViolationError, NotFoundError, TransientIOError
from app.infra.logging_config import LoggingConfig, get_logger
from app.routers.conversations_router import conversations_router
from app.routers.events import router as events_router
from app.routers.users_router import users_router
from app.routers.webhooks import router as webhooks_router

logger = get_logger()


def create_app(testing: bool = False) -> FastAPI:
    LoggingConfig()
    settings = get_settings()
    app = FastAPI(title=settings.app_name, debug=testing)

    app.include_router(webhooks_router)
    app.include_router(events_router)
    app.include_router(conversations_router)
    app.include_router(users_router)
    add_pagination(app)

    @app.exception_handler(ConstraintViolationError)
    async def constraint_violation_handler(
        request: Request, exc: ConstraintViolationError
    ) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(TransientIOError)
    async def transient_io_handler(
        request: Request, exc: TransientIOError
    ) -> JSONResponse:
        logger.warning("Upstream failure on %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=502, content={"detail": str(exc), "code": exc.code}
        )

    @app.get("/health", tags=["system"])
    def health() -> dict[str, str]:
        return {"status": "ok", "environment": settings.environment}

    if not testing:
        logger.info("Started %s (%s)", settings.app_name, settings.environment)
    return app


app = create_app()
