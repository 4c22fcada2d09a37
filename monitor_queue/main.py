import asyncio
import os
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app

from monitor_queue.api import router
from monitor_queue.api.exceptions import (
    ServiceError,
    service_error_handler,
    validation_error_handler,
)
from monitor_queue.autoscaler.controller import JobQueue
from monitor_queue.config import QueueConfig
from monitor_queue.log_handler.logging_config import setup_logging, get_logger, shutdown_logging
from monitor_queue.persistence.repository import CheckRepository, InMemoryCheckRepository
from monitor_queue.worker.handlers import MonitorPingHandler

logger = get_logger(__name__)

SHUTDOWN_TIMEOUT = 30  # seconds


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Start the job queue with the application and release its workers on exit.
    """
    setup_logging(
        log_file=os.environ.get("LOG_FILE"),
        module_levels={
            "monitor_queue.worker": os.environ.get("WORKER_LOG_LEVEL", "INFO"),
        },
    )

    try:
        logger.info("Starting monitor queue services...")

        if app.state.job_queue is None:
            app.state.job_queue = JobQueue(
                app.state.config,
                process_fn=MonitorPingHandler(app.state.repository),
            )
        await app.state.job_queue.initialize()

        logger.info("Application startup complete")
        yield

        logger.info("Initiating graceful shutdown...")
        try:
            await asyncio.wait_for(app.state.job_queue.close(), timeout=SHUTDOWN_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning(f"Job queue shutdown timed out after {SHUTDOWN_TIMEOUT}s")

        logger.info("Application shutdown complete")

    except Exception as e:
        logger.error(f"Error during application lifecycle: {str(e)}")
        raise
    finally:
        shutdown_logging()


def create_app(
    config: Optional[QueueConfig] = None,
    repository: Optional[CheckRepository] = None,
    job_queue: Optional[JobQueue] = None,
) -> FastAPI:
    """Creates and configures the FastAPI application"""
    app = FastAPI(
        title="Monitor Queue Service",
        description="Recurring monitor jobs on an autoscaled worker pool",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.config = config or QueueConfig.from_env()
    app.state.repository = repository or InMemoryCheckRepository()
    app.state.job_queue = job_queue

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.include_router(router, prefix="/api/v1")
    app.mount("/metrics", make_asgi_app())

    @app.get("/health")
    async def health():
        job_queue = app.state.job_queue
        return {
            "status": "ok",
            "workers": job_queue.pool_size if job_queue is not None else 0,
        }

    return app


def run_app():
    """Runs the application with Uvicorn"""
    try:
        app = create_app()

        config = uvicorn.Config(
            app=app,
            host=os.environ.get("HOST", "0.0.0.0"),
            port=int(os.environ.get("PORT", "8000")),
            log_level="info",
            timeout_graceful_shutdown=SHUTDOWN_TIMEOUT,
        )
        server = uvicorn.Server(config)
        server.run()
    except Exception as e:
        logger.error(f"Failed to start application: {str(e)}")
        raise


if __name__ == "__main__":
    run_app()
