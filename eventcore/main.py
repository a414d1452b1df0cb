"""
EventCore - event-driven automation and webhook delivery

FastAPI application entry point.
"""
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

# Import observability modules
from eventcore.config import settings
from eventcore.database import get_db
from eventcore.logging_config import configure_logging, logger
from eventcore.sentry_config import configure_sentry
from eventcore.middleware.logging import LoggingMiddleware
from eventcore.routes.metrics import router as metrics_router

# Import route modules
from eventcore.routes.events import router as events_router
from eventcore.routes.rules import router as rules_router
from eventcore.routes.webhooks import router as webhooks_router

# Initialize logging first
configure_logging()

# Initialize Sentry (if SENTRY_DSN is set)
configure_sentry()

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Automation rules and signed webhook delivery for property-management events",
)

# Add logging middleware FIRST (runs before other middleware)
app.add_middleware(LoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include metrics endpoint FIRST (so it's always available)
app.include_router(metrics_router)

# Event ingestion front door
app.include_router(events_router)

# Administrative surface
app.include_router(rules_router)
app.include_router(webhooks_router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health(db: AsyncSession = Depends(get_db)):
    """Detailed health check. Answers 503 when the database is unreachable."""
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("health_check_failed", component="database", error=str(e))
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": "unavailable"}
        )

    return {
        "status": "healthy",
        "database": "connected"
    }
