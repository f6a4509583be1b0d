"""FastAPI application entry point."""

import logging
import os
import threading
from typing import Optional

from fastapi import FastAPI

from system_agent.bootstrap import Container, build_container
from system_agent.config import settings
from system_agent.routes import jobs, tasks

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def run_migrations():
    """Create the schema with Alembic unless the tables already exist."""
    import sqlalchemy

    from system_agent.database import engine

    inspector = sqlalchemy.inspect(engine)
    if inspector.has_table("jobs") and inspector.has_table("scheduled_actions"):
        logger.info("Database tables already exist, skipping migrations")
        return

    logger.info("Running database migrations...")
    from alembic import command
    from alembic.config import Config

    alembic_cfg = Config(os.path.join(os.path.dirname(os.path.dirname(__file__)), "alembic.ini"))
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed successfully")


def create_app(container: Optional[Container] = None, run_worker: bool = True) -> FastAPI:
    """
    Build the application.

    Args:
        container: Pre-built services (tests); built at startup when omitted
        run_worker: Start the action runner on a background thread
    """
    app = FastAPI(
        title="System Agent",
        description="Deferred task orchestration with durable job records",
        version="0.1.0",
    )

    app.include_router(tasks.router)
    app.include_router(jobs.router)

    # Worker thread management
    worker_stop_event = threading.Event()
    app.state.container = container
    app.state.worker_thread = None

    @app.on_event("startup")
    async def startup_event():
        """Prepare the database and start the background worker."""
        logger.info("Starting application...")

        if app.state.container is None:
            try:
                run_migrations()
            except Exception as e:
                logger.error(f"Startup database check/migration error: {e}")
                logger.info("Continuing startup - assuming database is ready")
            app.state.container = build_container()

        if not run_worker:
            return

        logger.info("Starting background worker thread...")
        worker_thread = threading.Thread(
            target=app.state.container.runner.run,
            kwargs={"stop_event": worker_stop_event},
            daemon=True,
        )
        worker_thread.start()
        app.state.worker_thread = worker_thread
        logger.info("Background worker thread started")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Stop the background worker when the app shuts down."""
        logger.info("Shutting down application...")

        # Signal worker to stop
        worker_stop_event.set()

        worker_thread = app.state.worker_thread
        if worker_thread and worker_thread.is_alive():
            worker_thread.join(timeout=10)
            logger.info("Background worker thread stopped")

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()
