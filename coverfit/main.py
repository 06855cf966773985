import os
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from coverfit.routers import batch, documents, jobs, sentences, sessions

# Import logging and middleware
from coverfit.utils.logging_config import configure_for_environment, get_logger
from coverfit.middleware.error_handlers import (
    ExceptionHandlerMiddleware,
    RequestLoggingMiddleware,
    PerformanceMiddleware,
)

VERSION = "1.0.0"
SLOW_REQUEST_THRESHOLD = float(os.getenv("SLOW_REQUEST_THRESHOLD", "2.0"))

# Configure logging first
configure_for_environment()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager"""
    # Startup
    logger.info("CoverFit API starting up...")
    logger.info("Initializing database indexes...")

    try:
        from coverfit.services.db import init_indexes
        await init_indexes()
        logger.info("Database indexes initialized successfully")
    except Exception as e:
        logger.warning(f"Database index initialization had issues: {e}")
        logger.info("Application will continue - saved states may not expire automatically")

    logger.info("CoverFit API startup completed")

    yield

    # Shutdown
    logger.info("CoverFit API shutting down...")
    logger.info("CoverFit API shutdown completed")

app = FastAPI(title="CoverFit API", version=VERSION, lifespan=lifespan)

# Add middleware in order (LIFO - Last In, First Out)
# Exception handler should be the outermost middleware
app.add_middleware(PerformanceMiddleware, slow_request_threshold=SLOW_REQUEST_THRESHOLD)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(ExceptionHandlerMiddleware)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
@app.head("/")
async def root():
    """Root endpoint - handles both GET and HEAD requests for health checks"""
    logger.debug("Root endpoint accessed")
    return {"message": "Welcome to the CoverFit API", "version": VERSION, "status": "ok"}


@app.get("/health")
@app.head("/health")
async def health_check():
    """Health check endpoint - handles both GET and HEAD requests"""
    return {"status": "healthy", "timestamp": datetime.utcnow().isoformat() + "Z"}

# Include routers
app.include_router(jobs.router, prefix="/api", tags=["jobs"])
app.include_router(sentences.router, prefix="/api", tags=["sentences"])
app.include_router(documents.router, prefix="/api", tags=["documents"])
app.include_router(batch.router, prefix="/api")
app.include_router(sessions.router, prefix="/api/sessions", tags=["sessions"])

logger.info("CoverFit API initialized successfully")
