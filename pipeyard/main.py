"""
Pipe Yard FastAPI Main Application
Entry point for the pipe storage yard REST API
"""
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from pipeyard.api.v1.api_router import api_router
from pipeyard.core.config import settings
from pipeyard.core.database import check_db_connection, init_db
from pipeyard.core.exceptions import YardException
from pipeyard.core.logging import get_logger, setup_logging, setup_uvicorn_logging
from pipeyard.schemas.common import HealthResponse

setup_logging()
setup_uvicorn_logging()

logger = get_logger("main")
business_logger = get_logger("business.errors")

# HTTP status for each typed business error
ERROR_STATUS = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "already_completed": status.HTTP_409_CONFLICT,
    "cross_tenant_violation": status.HTTP_403_FORBIDDEN,
    "manifest_mismatch": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "capacity_exceeded": status.HTTP_409_CONFLICT,
    "invalid_adjustment": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "invalid_state_transition": status.HTTP_409_CONFLICT,
    "invalid_allocation": status.HTTP_409_CONFLICT,
    "insufficient_permissions": status.HTTP_403_FORBIDDEN,
    "validation_error": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "integration_error": status.HTTP_502_BAD_GATEWAY,
}

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
    ## Pipe Yard API

    Storage yard backend for oilfield pipe.

    ### Key Features:
    - **Rack Ledger**: Joint and length occupancy per rack, by yard area
    - **Allocation Guard**: Atomic capacity claims that never over-commit a rack
    - **Request Workflow**: Storage requests from submission to all pipe returned
    - **Load Workflow**: Inbound deliveries and outbound pickups with manifest reconciliation
    - **Rack Adjustments**: Admin occupancy corrections with a permanent audit trail
    """,
    docs_url=settings.DOCS_URL,
    redoc_url=settings.REDOC_URL,
    openapi_url=settings.OPENAPI_URL,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add trusted host middleware for production
if not settings.DEBUG:
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=settings.ALLOWED_HOSTS
    )


@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check():
    """
    Health check endpoint for monitoring and load balancers

    Returns system status and database connectivity
    """
    db_status = check_db_connection()
    return HealthResponse(
        status="healthy" if db_status else "degraded",
        version=settings.APP_VERSION,
        database="connected" if db_status else "disconnected",
        debug=settings.DEBUG,
    )


@app.get("/info", tags=["System"])
async def system_info():
    """System information endpoint"""
    return {
        "application": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "description": "Pipe storage yard: racks, storage requests, trucking loads",
        "api_version": "v1",
        "docs_url": settings.DOCS_URL,
        "features": [
            "Rack Ledger",
            "Allocation Guard",
            "Storage Request Workflow",
            "Trucking Load Workflow",
            "Manifest Reconciliation",
            "Audited Rack Adjustments",
        ],
    }


@app.on_event("startup")
async def startup_event():
    """
    Application startup tasks

    Verify database connectivity and create tables when configured to
    """
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    if not check_db_connection():
        logger.warning("Database unreachable on startup; requests will fail until it is available")
        return

    logger.info("Database connection established")
    if settings.AUTO_CREATE_TABLES:
        init_db()
    logger.info("Application startup completed successfully")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down application")


@app.exception_handler(YardException)
async def yard_exception_handler(request: Request, exc: YardException):
    """
    Typed business errors

    Rendered as {error, message, details}; cross-tenant violations are
    already on the security log.
    """
    if exc.error_code != "cross_tenant_violation":
        business_logger.info(f"{request.method} {request.url.path} -> {exc.error_code}: {exc.message}")

    return JSONResponse(
        status_code=ERROR_STATUS.get(exc.error_code, status.HTTP_400_BAD_REQUEST),
        content=jsonable_encoder({
            "error": exc.error_code,
            "message": exc.message,
            "details": exc.details(),
        }),
    )


@app.exception_handler(OperationalError)
async def database_exception_handler(request: Request, exc: OperationalError):
    """Lock timeouts and lost connections; the transaction has been rolled back"""
    logger.error(f"Database unavailable during {request.method} {request.url.path}: {exc}")

    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "error": "database_unavailable",
            "message": "The database is temporarily unavailable, please retry",
            "details": {},
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler for unhandled errors

    Args:
        request: FastAPI request object
        exc: Exception that occurred

    Returns:
        JSON error response
    """
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "server_error",
            "message": str(exc) if settings.DEBUG else "An unexpected error occurred",
            "details": {},
        }
    )


# Include API routers
app.include_router(api_router, prefix=settings.API_V1_STR)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "pipeyard.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
