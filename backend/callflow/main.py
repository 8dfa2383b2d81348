"""
FastAPI Application Entry Point
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from callflow.api.v1.routes import api_router
from callflow.core.config import Settings
from callflow.domain.exceptions import (
    CallFlowError,
    SessionConflictError,
    SessionNotFoundError,
)

settings = Settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan - startup and shutdown events.

    Startup:
    - Validates backend configuration
    - Builds the routing engine (session store, directory, services)

    Shutdown:
    - Closes storage backends
    """
    # ========================
    # STARTUP
    # ========================
    logger.info("Starting call-flow routing engine...")

    strict_validation = settings.environment == "production"

    try:
        from callflow.core.validation import validate_config_on_startup
        validate_config_on_startup(settings, strict=strict_validation)
    except RuntimeError as e:
        if strict_validation:
            logger.error(f"Startup failed: {e}")
            raise
        else:
            logger.warning(f"Configuration warnings (non-fatal in {settings.environment}): {e}")

    from callflow.core.container import build_engine
    app.state.engine = build_engine(settings)

    logger.info("Call-flow routing engine started successfully")

    yield  # Application is running

    # ========================
    # SHUTDOWN
    # ========================
    logger.info("Shutting down call-flow routing engine...")

    try:
        await app.state.engine.close()
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")

    logger.info("Call-flow routing engine shutdown complete")


app = FastAPI(
    title="Call-Flow Routing Engine",
    description="Multi-tenant IVR routing driven by telephony webhooks",
    version="1.0.0",
    lifespan=lifespan
)


# ========== Error Handlers ==========

def _field_name(loc: tuple) -> str:
    """Drop the 'body'/'query' prefix FastAPI puts on error locations."""
    parts = [str(part) for part in loc if part not in ("body", "query", "path")]
    return ".".join(parts) or "body"


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = []
    for error in exc.errors():
        field = _field_name(error.get("loc", ()))
        message = f"{field} is required" if error.get("type") == "missing" else error.get("msg")
        details.append({"field": field, "message": message})

    logger.info(f"Rejected {request.url.path}: {details}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "error": "Validation error", "details": details}
    )


@app.exception_handler(SessionNotFoundError)
async def session_not_found_handler(request: Request, exc: SessionNotFoundError):
    logger.warning(f"{request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"success": False, "error": "Call not found", "message": "Call session not found"}
    )


@app.exception_handler(SessionConflictError)
async def session_conflict_handler(request: Request, exc: SessionConflictError):
    logger.warning(f"{request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"success": False, "error": "Call already exists", "message": exc.message}
    )


@app.exception_handler(CallFlowError)
async def call_flow_error_handler(request: Request, exc: CallFlowError):
    # Storage failures and exhausted retries; the provider is expected to retry
    logger.error(
        f"{request.url.path} failed: tenant_id={exc.tenant_id}, call_id={exc.call_id}: {exc.message}",
        exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": "Server error",
            "message": "An error occurred processing the request"
        }
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"{request.url.path} failed with unhandled error: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": "Server error",
            "message": "An error occurred processing the request"
        }
    )


# Include API routes
app.include_router(api_router, prefix=settings.api_prefix)


@app.get("/")
async def root():
    return {"message": "Call-Flow Routing Engine API", "status": "running"}


@app.get("/health")
async def health_check():
    """
    Health check endpoint.

    Returns basic health status and the configured backends.
    """
    return {
        "status": "healthy",
        "environment": settings.environment,
        "session_backend": settings.session_backend,
        "directory_backend": settings.directory_backend,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
