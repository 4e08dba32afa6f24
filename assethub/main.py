"""AssetHub API — main application entry point."""

from datetime import datetime, timezone

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm.exc import StaleDataError

from assethub.api.routes import assets, health, imports
from assethub.core.config import settings
from assethub.core.errors import AppError
from assethub.core.logging import configure_logging

configure_logging()

logger = structlog.get_logger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "Multi-tenant facilities backend. "
        "Asset import pipeline: upload → analyze → map → resolve → execute."
    ),
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── Error Handlers ───────────────────────────────────────────

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    logger.info(
        "request_failed",
        path=request.url.path,
        code=exc.code,
        status_code=exc.status_code,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StaleDataError)
async def stale_data_handler(request: Request, exc: StaleDataError):
    """Another request changed the same import session first."""
    logger.warning("concurrent_modification", path=request.url.path)
    return JSONResponse(
        status_code=409,
        content={
            "success": False,
            "error": {
                "code": "CONCURRENT_MODIFICATION",
                "message": "The import session was modified by another request. Reload and retry.",
                "details": {},
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
    )
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "details": {},
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        },
    )


# Routes
app.include_router(health.router, tags=["health"])
app.include_router(imports.router, prefix="/api/assets/import", tags=["imports"])
app.include_router(assets.router, prefix="/api/assets", tags=["assets"])
