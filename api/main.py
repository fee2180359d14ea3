import logging
import sys
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core import errors
from core.config import ConfigError, Settings, load_settings
from dashboard import router as dashboard_router

logger = logging.getLogger(__name__)

SERVICE_NAME = "dashboard-service"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Settings are resolved once per process; a missing variable aborts startup.
    if app.state.settings is None:
        app.state.settings = load_settings()
    settings: Settings = app.state.settings
    logger.info(
        "startup service=%s environment=%s student_service_url=%s drive_service_url=%s",
        SERVICE_NAME,
        settings.environment,
        settings.student_service_url,
        settings.drive_service_url,
    )
    yield
    logger.info("shutdown service=%s", SERVICE_NAME)


async def _dashboard_error_handler(_: Request, exc: errors.DashboardHTTPError) -> JSONResponse:
    return exc.outcome.to_response()


async def _credential_error_handler(_: Request, exc: Exception) -> JSONResponse:
    return errors.classify(exc, failure_message="Unauthorized").to_response()


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error path=%s", request.url.path)
    return errors.INTERNAL_ERROR.to_response()


def create_app(
    settings: Settings | None = None,
    *,
    upstream_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    app = FastAPI(
        title="Dashboard Service API",
        description="Aggregates data from the Student and Drive services",
        version="1.0.0",
        docs_url="/api-docs",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.upstream_transport = upstream_transport

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(errors.DashboardHTTPError, _dashboard_error_handler)
    app.add_exception_handler(errors.MissingCredential, _credential_error_handler)
    app.add_exception_handler(errors.InvalidCredential, _credential_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    app.include_router(dashboard_router.router, tags=["dashboard"])

    @app.get("/health")
    def health(request: Request) -> dict:
        current: Settings | None = request.app.state.settings
        return {
            "status": "OK",
            "service": SERVICE_NAME,
            "environment": current.environment if current else None,
            "studentServiceUrl": current.student_service_url if current else None,
            "driveServiceUrl": current.drive_service_url if current else None,
        }

    @app.get("/")
    def root() -> dict:
        return {"message": "dashboard-service api"}

    return app


app = create_app()


def run() -> None:
    try:
        settings = load_settings()
    except ConfigError as exc:
        logging.basicConfig(level=logging.INFO)
        logger.error("startup_failed reason=%s", exc)
        for name in exc.missing:
            logger.error("- %s is not set", name)
        sys.exit(1)

    logging.basicConfig(level=settings.log_level)
    app.state.settings = settings
    uvicorn.run(app, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
