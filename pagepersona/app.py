import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from pagepersona.application import get_transform_service
from pagepersona.core.settings import Settings, configure_logging
from pagepersona.routes import health, transform

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("PagePersona API starting (env=%s)", settings.app_env)
        yield
        scheduler = get_transform_service().scheduler
        if scheduler.pending:
            logger.info("Waiting for %d transformation jobs to finish", scheduler.pending)
        await scheduler.drain(timeout=settings.transform_timeout_seconds)

    app = FastAPI(title="PagePersona API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Invalid request")
        return JSONResponse(
            {"detail": {"kind": "InvalidRequest", "message": f"{field}: {message}" if field else message}},
            status_code=400,
        )

    app.include_router(health.router, prefix="/api")
    app.include_router(transform.router, prefix="/api")

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "PagePersona API",
                "docs": "/docs",
                "health": "/api/health",
                "personas": "/api/transform/personas",
            }
        )

    return app


app = create_app()
