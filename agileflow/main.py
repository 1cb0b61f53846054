from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import uvicorn

from .config import get_settings
from .core.exceptions import AgileflowError, InvalidStateError, NotFoundError, ValidationError
from .database import create_tables
from .api.v1.router import api_router
from .utils.logging import get_logger, setup_logging

logger = get_logger(__name__)

ERROR_STATUS_CODES = {
    NotFoundError: 404,
    ValidationError: 422,
    InvalidStateError: 409,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    setup_logging(settings.log_level, settings.log_file)
    logger.info("Starting %s application", settings.app_name)

    # Create database tables
    await create_tables()

    yield

    # Shutdown
    logger.info("Shutting down %s application", settings.app_name)


# Create FastAPI application
settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Agile workflow engine: backlogs, sprints, stories and tasks",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["*"],
)


@app.exception_handler(AgileflowError)
async def workflow_error_handler(request: Request, exc: AgileflowError):
    status_code = next(
        (code for error_cls, code in ERROR_STATUS_CODES.items() if isinstance(exc, error_cls)),
        400,
    )
    if status_code != 404:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, **exc.details},
    )


# Include API routes
app.include_router(api_router, prefix="/api/v1")

# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "version": settings.app_version,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


if __name__ == "__main__":
    uvicorn.run(
        "agileflow.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
