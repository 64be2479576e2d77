"""
FastAPI Main Application Entry Point for the Finding SLA Escalation engine.

This backend service handles:
- Due-date warnings for inspection findings
- Level 1 / Level 2 escalation of overdue findings to tenant management
- Database operations via Supabase
- Background job scheduling
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from sla_escalation.core.config import settings
from sla_escalation.core.exceptions import EscalationEngineException
from sla_escalation.api.routes import sla_router
from sla_escalation.services.scheduler import get_scheduler


# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Start background scheduler (one instance only)

    Shutdown:
    - Stop scheduler gracefully
    """
    # Startup
    logger.info(f"🚀 Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Debug mode: {settings.debug}")
    logger.info(f"Scheduler enabled: {settings.enable_scheduler}")
    logger.info(f"Run scheduler (this instance): {settings.run_scheduler}")

    app.state.scheduler = None

    # Only start the scheduler if BOTH enabled AND run_scheduler is true.
    # Set RUN_SCHEDULER=true on only ONE worker/container in production.
    if settings.enable_scheduler and settings.run_scheduler:
        try:
            app.state.scheduler = get_scheduler()
            app.state.scheduler.start()
            logger.info("✅ Background scheduler started")
        except Exception as e:
            logger.error(f"❌ Failed to start scheduler: {e}")

    yield

    # Shutdown
    if app.state.scheduler and app.state.scheduler.is_running:
        app.state.scheduler.stop()
        logger.info("✅ Scheduler stopped")

    logger.info("👋 Shutting down...")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    # Finding SLA Escalation

    Periodic SLA enforcement for area inspection findings.

    ## Per finding, per run
    - **Warning**: owner notified once inside the warning window
    - **Level 1**: management notified once overdue past the first threshold
    - **Level 2**: management notified again past the second threshold

    ## Trigger Response
    ```json
    {
      "success": true,
      "warningsSent": 3,
      "escalationsSent": 1,
      "findingsChecked": 42
    }
    ```
    """,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# Global exception handler for EscalationEngineExceptions
@app.exception_handler(EscalationEngineException)
async def engine_exception_handler(request, exc: EscalationEngineException):
    """Handle all EscalationEngineException subclasses."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


# Include API routers
app.include_router(sla_router)


# Health check endpoint
@app.get("/health", tags=["System"])
async def health_check():
    """
    Health check endpoint for monitoring.

    Returns service status and scheduler health.
    """
    scheduler_status = get_scheduler().get_health_status()

    return {
        "status": scheduler_status["status"],
        "service": settings.app_name,
        "version": settings.app_version,
        "debug": settings.debug,
        "scheduler": scheduler_status,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


# Root endpoint
@app.get("/", tags=["System"])
async def root():
    """Root endpoint with API information."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs" if settings.debug else "Docs disabled in production",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "sla_escalation.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
