import os
import subprocess
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from madison.api.generate.router import router as generate_router
from madison.api.knowledge.router import router as knowledge_router
from madison.api.products.router import router as products_router
from madison.config.logger import app_logger, log_request_end, log_request_error, log_request_start
from madison.config.settings import settings
from madison.db.supabase_db import ping_supabase
from madison.utils.errors import (
    GenerationFailedError,
    MadisonError,
    OrganizationNotFoundError,
    ProviderConfigError,
    SchemaSkewError,
    UpgradeRequiredError,
)
from madison.utils.responses import error_response


_git_sha_cache: Optional[str] = None

ERROR_STATUS_CODES = {
    UpgradeRequiredError: 402,
    OrganizationNotFoundError: 400,
    GenerationFailedError: 502,
    ProviderConfigError: 503,
    SchemaSkewError: 500,
}


def get_git_sha() -> str:
    """Get the current Git commit SHA (cached to avoid blocking)."""
    global _git_sha_cache
    if _git_sha_cache is not None:
        return _git_sha_cache

    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            capture_output=True,
            text=True,
            check=True,
            timeout=1.0
        )
        _git_sha_cache = result.stdout.strip()[:8]
        return _git_sha_cache
    except (subprocess.CalledProcessError, FileNotFoundError, subprocess.TimeoutExpired):
        _git_sha_cache = "local-dev"
        return _git_sha_cache


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager for startup and shutdown events."""
    app_logger.info(f"{settings.APP_NAME} starting up")
    app_logger.info(
        f"Providers configured: claude={bool(settings.ANTHROPIC_API_KEY)}, "
        f"gemini={bool(settings.GEMINI_API_KEY)}, freepik={bool(settings.FREEPIK_API_KEY)}"
    )

    try:
        is_ok, message = await ping_supabase()
        if is_ok:
            app_logger.info(f"Supabase connection: {message}")
        else:
            app_logger.warning(f"Supabase connection issue: {message}")
            app_logger.warning("Generation will run without brand knowledge. Check SUPABASE_* environment variables.")
    except Exception as e:
        app_logger.warning(f"Supabase initialization: {e}")

    app_logger.info("Application initialized successfully")

    yield

    app_logger.info(f"{settings.APP_NAME} shutting down")


app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Add PRODUCTION DOMAINS HERE
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests with timing information using Loguru."""
    start_time = datetime.now()
    log_request_start(request)

    try:
        response = await call_next(request)
        process_time = (datetime.now() - start_time).total_seconds()
        log_request_end(request, response.status_code, process_time)
        return response
    except Exception as e:
        process_time = (datetime.now() - start_time).total_seconds()
        log_request_error(request, e, process_time)
        raise


@app.exception_handler(MadisonError)
async def madison_error_handler(request: Request, exc: MadisonError):
    """Turn pipeline errors into one structured error response."""
    status_code = next(
        (code for error_type, code in ERROR_STATUS_CODES.items() if isinstance(exc, error_type)),
        500,
    )
    if status_code >= 500:
        app_logger.error(f"{type(exc).__name__} on {request.url.path}: {exc}")
    else:
        app_logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc}")
    body = error_response(error=str(exc), error_type=type(exc).__name__)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@app.get("/", tags=["health"])
async def root():
    """Root endpoint with basic API information."""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "status": "operational",
        "database": "Supabase REST API",
        "docs": "/docs",
        "redoc": "/redoc"
    }


@app.get("/status", tags=["health"])
async def status():
    """Status endpoint with build information for CI/CD monitoring."""
    build_number = os.getenv("BUILD_NUMBER", "local-dev")
    git_sha = os.getenv("GIT_SHA", os.getenv("GITHUB_SHA", get_git_sha()))
    environment = os.getenv("ENVIRONMENT", os.getenv("ENV", "development"))

    return {
        "status": "ok",
        "build": build_number,
        "sha": git_sha,
        "env": environment
    }


@app.get("/health/db", tags=["health"])
async def health_db():
    """Database health endpoint: checks Supabase REST API connection."""
    is_ok, message = await ping_supabase()
    if not is_ok:
        return JSONResponse(
            status_code=503,
            content={"status": "degraded", "db": "unavailable", "message": message}
        )
    return {"status": "ok", "db": "available", "connection": "Supabase REST API", "message": message}


app.include_router(generate_router)
app.include_router(products_router)
app.include_router(knowledge_router)


if __name__ == "__main__":
    import uvicorn

    app_logger.info(f"Starting {settings.APP_NAME} server")

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_config=None  # Use our custom logger
    )
