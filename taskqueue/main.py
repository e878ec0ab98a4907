"""FastAPI application entry point for the coordinator."""

import logging
import os
import threading

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from taskqueue.config import settings
from taskqueue.errors import TransientDependencyError
from taskqueue.routes import tasks, users, workers

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Task Queue Coordinator",
    description="Task and worker coordination for a distributed task queue",
    version="0.1.0",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(tasks.router)
app.include_router(workers.router)
app.include_router(users.router)

# Reclaimer thread management
reclaimer_thread = None
reclaimer_stop_event = threading.Event()


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed requests are reported as 400."""
    return JSONResponse(
        status_code=400,
        content={"detail": "Malformed request", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(TransientDependencyError)
async def dependency_exception_handler(request: Request, exc: TransientDependencyError):
    logger.error(f"Dependency error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable"})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log unexpected errors without leaking detail to the caller."""
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def run_reclaimer_loop():
    """Run the stale task reclaimer in a background thread."""
    from taskqueue.services.reclaimer import StaleTaskReclaimer
    logger.info("Starting stale task reclaimer thread")
    StaleTaskReclaimer().run(reclaimer_stop_event)


def prepare_database():
    """Run migrations when the schema is missing, then seed the bootstrap admin."""
    import sqlalchemy

    from taskqueue.database import SessionLocal, engine
    from taskqueue.services.auth import ensure_admin

    try:
        table_exists = sqlalchemy.inspect(engine).has_table("tasks")

        if table_exists:
            logger.info("Database tables already exist, skipping migrations")
        else:
            logger.info("Running database migrations...")
            from alembic import command
            from alembic.config import Config

            root_dir = os.path.dirname(os.path.dirname(__file__))
            alembic_cfg = Config(os.path.join(root_dir, "alembic.ini"))
            alembic_cfg.set_main_option("script_location", os.path.join(root_dir, "alembic"))
            command.upgrade(alembic_cfg, "head")
            logger.info("Database migrations completed successfully")
    except Exception as e:
        logger.error(f"Startup database check/migration error: {e}")
        logger.info("Continuing startup - assuming database is ready")

    if settings.BOOTSTRAP_ADMIN_TOKEN:
        db = SessionLocal()
        try:
            ensure_admin(db, settings.BOOTSTRAP_ADMIN_TOKEN)
        except Exception as e:
            logger.error(f"Could not create bootstrap admin: {e}")
        finally:
            db.close()


@app.on_event("startup")
async def startup_event():
    """Prepare the database and start the reclaimer."""
    global reclaimer_thread
    logger.info("Starting coordinator...")

    prepare_database()

    if not settings.RECLAIMER_ENABLED:
        logger.info("Stale task reclaimer disabled")
        return

    reclaimer_stop_event.clear()
    reclaimer_thread = threading.Thread(target=run_reclaimer_loop, daemon=True)
    reclaimer_thread.start()
    logger.info("Stale task reclaimer thread started")


@app.on_event("shutdown")
async def shutdown_event():
    """Stop the reclaimer when the app shuts down."""
    global reclaimer_thread
    logger.info("Shutting down coordinator...")

    reclaimer_stop_event.set()

    if reclaimer_thread and reclaimer_thread.is_alive():
        reclaimer_thread.join(timeout=10)
        logger.info("Stale task reclaimer thread stopped")


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "healthy"}


def main():
    """Entry point for running the coordinator with uvicorn."""
    import uvicorn

    uvicorn.run(app, host=settings.COORDINATOR_HOST, port=settings.COORDINATOR_PORT)


if __name__ == "__main__":
    main()
