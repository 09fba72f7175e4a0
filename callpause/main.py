"""
Call Center Pause Service - FastAPI Application
Main entry point for the agent pause coordination service.
"""

import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware

from callpause.config.exceptions import ConfigurationError
from callpause.config.settings import get_settings
from callpause.controllers.pause_controller import router as pause_router
from callpause.database.init_db import (
    dispose_async_database,
    get_async_session_factory,
    get_database_info,
    initialize_async_database,
    initialize_database,
)
from callpause.integrations.ami.client import create_ami_client
from callpause.repositories.base_repository import DatabaseManager
from callpause.services.auto_unpause_scheduler import AutoUnpauseScheduler, set_auto_unpause_scheduler
from callpause.services.pause_coordinator import PauseCoordinator, set_pause_coordinator
from callpause.services.pause_log_service import PauseLogService, set_pause_log_service
from callpause.services.pause_reason_service import PauseReasonService, set_pause_reason_service
from callpause.utils.logger import get_module_logger, setup_logging
from callpause.utils.version import VERSION

if TYPE_CHECKING:
    from callpause.integrations.ami.client import AMIClient
    from callpause.services.events.cleanup import EventCleanupService
    from callpause.services.expired_pause_sweeper import ExpiredPauseSweeper

logger = get_module_logger(__name__)

db_manager: Optional[DatabaseManager] = None
ami_client: Optional["AMIClient"] = None
auto_unpause_scheduler: Optional[AutoUnpauseScheduler] = None
expired_pause_sweeper: Optional["ExpiredPauseSweeper"] = None
event_cleanup_service: Optional["EventCleanupService"] = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    global db_manager, ami_client, auto_unpause_scheduler, expired_pause_sweeper, event_cleanup_service

    settings = get_settings()
    setup_logging(settings.log_level)

    if not initialize_database():
        logger.critical(
            "Database initialization failed. The pause session log is a critical "
            "dependency - exiting to allow restart."
        )
        sys.exit(1)

    db_manager = DatabaseManager(settings.database_url)
    db_manager.initialize()

    reason_service = PauseReasonService(db_manager.get_session)
    set_pause_reason_service(reason_service)
    set_pause_log_service(PauseLogService(db_manager.get_session, settings))

    try:
        reasons = settings.pause_reasons if settings.seed_default_pause_reasons else {}
        reason_service.seed_reasons(reasons)
    except ConfigurationError as e:
        logger.critical(f"Invalid pause reason configuration: {e} - exiting")
        sys.exit(1)

    try:
        initialize_async_database(settings.database_url)
    except Exception as e:
        logger.error(f"Failed to initialize event database: {e}", exc_info=True)
        logger.warning("Application will continue without persisted events")

    ami_client = create_ami_client(settings)

    coordinator = PauseCoordinator(db_manager.get_session, ami_client, settings)
    auto_unpause_scheduler = AutoUnpauseScheduler(db_manager.get_session, coordinator)
    coordinator.attach_scheduler(auto_unpause_scheduler)
    set_pause_coordinator(coordinator)
    set_auto_unpause_scheduler(auto_unpause_scheduler)

    # Timers must be rebuilt before the API accepts pause traffic
    try:
        await auto_unpause_scheduler.restore()
    except Exception as e:
        logger.critical(f"Failed to restore auto-unpause timers: {e} - exiting to allow restart", exc_info=True)
        sys.exit(1)

    if settings.expiry_sweep_interval_seconds > 0:
        from callpause.services.expired_pause_sweeper import ExpiredPauseSweeper

        expired_pause_sweeper = ExpiredPauseSweeper(
            coordinator, auto_unpause_scheduler, settings.expiry_sweep_interval_seconds
        )
        await expired_pause_sweeper.start()

    try:
        from callpause.services.events.cleanup import EventCleanupService

        event_cleanup_service = EventCleanupService(
            db_session_factory=get_async_session_factory(),
            retention_hours=settings.event_retention_hours,
            cleanup_interval_hours=settings.event_cleanup_interval_hours,
        )
        await event_cleanup_service.start()
    except RuntimeError as e:
        logger.warning(f"Event cleanup disabled: {e}")
        event_cleanup_service = None

    db_info = get_database_info()
    logger.info(
        f"Call center pause service started (database: {db_info.get('database_name', 'unknown')}, "
        f"AMI: {'enabled' if ami_client else 'disabled'})"
    )

    yield

    logger.info("Call center pause service shutting down...")

    if expired_pause_sweeper is not None:
        try:
            await expired_pause_sweeper.stop()
        except Exception as e:
            logger.error(f"Error stopping expired pause sweeper: {e}", exc_info=True)

    if auto_unpause_scheduler is not None:
        await auto_unpause_scheduler.shutdown()

    if event_cleanup_service is not None:
        try:
            await event_cleanup_service.stop()
        except Exception as e:
            logger.error(f"Error stopping event cleanup service: {e}", exc_info=True)

    if ami_client is not None:
        await ami_client.close()

    try:
        await dispose_async_database()
    except Exception as e:
        logger.error(f"Error disposing event database: {e}", exc_info=True)

    if db_manager is not None:
        db_manager.close()

    set_pause_coordinator(None)
    set_auto_unpause_scheduler(None)
    set_pause_log_service(None)
    set_pause_reason_service(None)
    logger.info("Call center pause service shutdown complete")


app = FastAPI(
    title="Call Center Pause Service",
    description="Agent pause coordination with automatic unpause for Asterisk queues",
    version=VERSION,
    lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(pause_router, tags=["pause"])


@app.get("/health")
async def health_check(response: Response) -> Dict[str, Any]:
    """
    Health check endpoint.

    Returns:
        - HTTP 200: Database reachable
        - HTTP 503: Database unreachable
    """
    health_status: Dict[str, Any] = {
        "status": "healthy",
        "service": "callpause",
        "version": VERSION,
        "timestamp": datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
    }

    db_info = get_database_info()
    database_status = "healthy" if db_info.get("connection_test") else "unhealthy"
    if database_status != "healthy":
        health_status["status"] = "degraded"

    ami_status = "disabled"
    if ami_client is not None:
        ami_status = "connected" if ami_client.is_connected else "disconnected"

    health_status["services"] = {
        "database": {
            "status": database_status,
            "type": db_info.get("database_type"),
        },
        "ami": ami_status,
        "auto_unpause_timers": len(auto_unpause_scheduler.get_active_timers()) if auto_unpause_scheduler else 0,
    }

    if health_status["status"] != "healthy":
        response.status_code = 503
    return health_status


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "callpause.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
