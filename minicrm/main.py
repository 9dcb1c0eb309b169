"""
Mini CRM API - Main Application

Customer/order ingestion, audience preview and campaign dispatch. Writes go
through Redis work queues; the consumers run either as separate processes
(``python -m minicrm.tasks``) or inside this app when
RUN_CONSUMERS_IN_PROCESS is set.
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

from minicrm import __version__
from minicrm.api.router import api_router
from minicrm.config import settings
from minicrm.database import dispose_db, init_db
from minicrm.exceptions import CRMException, create_exception_handlers
from minicrm.middleware.correlation import CorrelationIdMiddleware, configure_logging
from minicrm.services.queue_service import queue_connection
# Import all models to register them with SQLAlchemy metadata before init_db()
from minicrm.models import Customer, Order, CommunicationLog  # noqa: F401

configure_logging(settings.DEBUG)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting Mini CRM API...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    try:
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        # SECURITY: Don't log full exception details which may contain credentials
        logger.error(f"Database initialization failed: {type(e).__name__}")
        logger.warning("App starting without database - some features may not work")

    stop = asyncio.Event()
    consumer_tasks = []
    if settings.RUN_CONSUMERS_IN_PROCESS:
        from minicrm.tasks import start_consumers
        consumer_tasks = start_consumers(stop)

    yield

    logger.info("Shutting down Mini CRM API...")
    stop.set()
    for task in consumer_tasks:
        task.cancel()
    await asyncio.gather(*consumer_tasks, return_exceptions=True)
    await queue_connection.close()
    await dispose_db()


docs_url = "/docs" if settings.DOCS_ENABLED else None
redoc_url = "/redoc" if settings.DOCS_ENABLED else None

app = FastAPI(
    title="Mini CRM API",
    description="Customer ingestion, audience rules and campaign delivery",
    version=__version__,
    docs_url=docs_url,
    redoc_url=redoc_url,
    lifespan=lifespan,
)

# SECURITY: Restrict origins to known frontend URLs
allowed_origins = [
    settings.FRONTEND_URL,
    "http://localhost:5173",  # Vite dev server
    "http://localhost:3000",  # Alternative dev port
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

handlers = create_exception_handlers(allowed_origins)
app.add_exception_handler(CRMException, handlers["crm"])
app.add_exception_handler(StarletteHTTPException, handlers["http"])
app.add_exception_handler(RequestValidationError, handlers["validation"])
app.add_exception_handler(Exception, handlers["generic"])

app.include_router(api_router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint - API info."""
    response = {
        "name": "Mini CRM API",
        "version": __version__,
        "health": "/health",
    }
    if settings.DOCS_ENABLED:
        response["docs"] = "/docs"
    return response


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__,
        "environment": settings.ENVIRONMENT,
        "queue": queue_connection.state.value,
    }


# For running with uvicorn directly (development only)
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "minicrm.main:app",
        host="0.0.0.0",
        port=3000,
        reload=settings.DEBUG,
    )
