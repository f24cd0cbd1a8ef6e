import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from videoframer.api import media
from videoframer.api.deps import RuntimeDep
from videoframer.config import Settings, get_settings
from videoframer.constants.error_codes import get_error_spec
from videoframer.exceptions import FramerError, RateLimitExceededError
from videoframer.runtime import Runtime, build_runtime
from videoframer.schemas.job import HealthResponse
from videoframer.services.execution_backend import DirectExecutionBackend

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, runtime: Runtime | None = None) -> FastAPI:
    """Build the API application.

    A prebuilt ``runtime`` skips the broker probe (used by tests); otherwise
    the runtime is assembled during startup.
    """
    settings = settings or (runtime.settings if runtime else get_settings())
    logging.basicConfig(level=settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        # Startup
        if getattr(app.state, "runtime", None) is None:
            app.state.runtime = build_runtime(settings)
        rt: Runtime = app.state.runtime
        await rt.sweeper.start()
        yield
        # Shutdown
        await rt.sweeper.stop()
        if isinstance(rt.backend, DirectExecutionBackend):
            await rt.backend.shutdown()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.runtime = runtime

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(FramerError)
    async def framer_exception_handler(request: Request, exc: FramerError) -> JSONResponse:
        headers = None
        if isinstance(exc, RateLimitExceededError):
            headers = {"Retry-After": str(exc.retry_after_seconds)}
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    # Global exception handler to ensure errors return proper JSON
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled exception: {exc}")
        spec = get_error_spec("INTERNAL_ERROR")
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Internal server error",
                "code": "INTERNAL_ERROR",
                "retryable": spec.get("retryable", False),
            },
        )

    # Routers
    app.include_router(media.router, prefix="/api", tags=["media"])

    @app.get("/api/health", response_model=HealthResponse)
    async def health_check(runtime: RuntimeDep) -> HealthResponse:
        return HealthResponse(
            status="ok",
            message="Video Framer API is running",
            timestamp=datetime.now(timezone.utc).isoformat(),
            mode=runtime.mode,
        )

    return app


app = create_app()
