"""
SteelTrack FastAPI Main Application
Entry point for the SteelTrack inventory REST API
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from steeltrack.api.v1.api_router import api_router
from steeltrack.core.config import settings
from steeltrack.core.database import check_db_connection, init_db
from steeltrack.core.exceptions import (
    AuthenticationError, BusinessLogicError, ImportFormatError, MigrationError,
    NotFoundError, ValidationError
)
from steeltrack.core.logging import setup_logging
from steeltrack.core.security import session_registry

logger = logging.getLogger("steeltrack.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application startup and shutdown

    Configures logging and brings the database schema up to date.
    Open sessions are dropped on shutdown so no access code outlives the process.
    """
    setup_logging()
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    init_db()
    logger.info("Application startup completed successfully")
    yield
    closed = session_registry.close_all()
    logger.info(f"Shutting down application, {closed} session(s) closed")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
    ## SteelTrack Inventory API

    Steel coil and sheet inventory with sales tracking.

    ### Key Features:
    - **Stock Lots**: Entries with dimensions, lot codes, distribution center moves
    - **Sales**: Per-lot sales checked against the remaining balance
    - **CSV Import**: Inventory, sales and combined files with per-row reports
    - **Field Encryption**: Sensitive values sealed with AES-GCM under the access code
    - **Schema Migration**: Older database files are upgraded in place on startup
    """,
    docs_url=settings.DOCS_URL,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(status_code: int, error: str, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "detail": str(exc)},
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return _error_response(status.HTTP_400_BAD_REQUEST, "validation_error", exc)


@app.exception_handler(ImportFormatError)
async def import_format_error_handler(request: Request, exc: ImportFormatError):
    return _error_response(status.HTTP_400_BAD_REQUEST, "import_format_error", exc)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return _error_response(status.HTTP_404_NOT_FOUND, "not_found", exc)


@app.exception_handler(BusinessLogicError)
async def business_logic_error_handler(request: Request, exc: BusinessLogicError):
    return _error_response(status.HTTP_409_CONFLICT, "business_rule_violation", exc)


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError):
    response = _error_response(status.HTTP_401_UNAUTHORIZED, "authentication_failed", exc)
    response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(MigrationError)
async def migration_error_handler(request: Request, exc: MigrationError):
    logger.error(f"Schema migration failed: {exc}")
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "migration_failed", exc)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler for unhandled errors
    """
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if settings.DEBUG else "An unexpected error occurred",
            "type": "server_error"
        }
    )


@app.get("/health", tags=["system"])
async def health_check():
    """
    Health check endpoint

    Returns system status and database connectivity
    """
    try:
        db_status = check_db_connection()
        return {
            "status": "healthy" if db_status else "degraded",
            "version": settings.APP_VERSION,
            "database": "connected" if db_status else "disconnected",
            "open_sessions": len(session_registry),
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(status_code=503, detail="Service unavailable")


@app.get("/info", tags=["system"])
async def system_info():
    """Application configuration and build information"""
    return {
        "application": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "api_version": "v1",
        "docs_url": settings.DOCS_URL,
        "features": [
            "Stock lots and dimensions",
            "Sales with balance checks",
            "CSV import",
            "Field-level encryption",
        ],
    }


app.include_router(api_router, prefix=settings.API_V1_STR)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "steeltrack.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
