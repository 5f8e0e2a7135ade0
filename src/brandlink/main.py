"""
# BrandLink - Main Application Module

Entry point of the BrandLink API: a multi-tenant backend connecting brands,
manufacturers and end users, with NFT product certificates, a media library
and a session-aware security layer.

## Startup

1.  **Database**: connect to MongoDB (with retries) and ensure indexes.
2.  **Background tasks**: start the periodic loops from `brandlink.periodics`:
    - scheduled certificate transfers;
    - retries of failed transfers;
    - expired session and blacklist cleanup;
    - expired notification cleanup.

## Shutdown

1.  Cancel the background tasks and wait up to 5 seconds for each.
2.  Close the blockchain HTTP client and the Redis client.
3.  Disconnect from MongoDB.

## Request pipeline

`CORSMiddleware` → `RequestLoggingMiddleware` → router → service. Errors are
turned into JSON by the handlers in `brandlink.middleware.error_handlers`.
Prometheus metrics are exposed on `/metrics`.

## Running

```bash
brandlink
# or
uvicorn brandlink.main:app --reload
```
"""

import asyncio
from contextlib import asynccontextmanager
import time

from fastapi import FastAPI, HTTPException
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.middleware.cors import CORSMiddleware
import uvicorn

from brandlink.config import settings
from brandlink.database import db_manager
from brandlink.managers.logging_manager import get_logger
from brandlink.managers.redis_manager import redis_manager
from brandlink.middleware.error_handlers import register_exception_handlers
from brandlink.periodics import (
    periodic_notification_cleanup,
    periodic_pending_transfers,
    periodic_security_cleanup,
    periodic_transfer_retry,
)
from brandlink.routes import (
    admin_router,
    auth_router,
    brands_router,
    certificates_router,
    health_router,
    manufacturers_router,
    media_router,
    notifications_router,
    security_router,
    users_router,
)
from brandlink.services.blockchain_client import blockchain_client
from brandlink.utils.logging_utils import (
    RequestLoggingMiddleware,
    log_application_lifecycle,
    log_error_with_context,
)

logger = get_logger(prefix="[Main]")

APP_NAME = "BrandLink API"
APP_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """
    Connect resources before serving and release them on shutdown.

    Raises:
        HTTPException: 503 if the database cannot be reached at startup.
    """
    startup_start_time = time.time()
    log_application_lifecycle(
        "startup_initiated",
        {
            "app_name": APP_NAME,
            "version": APP_VERSION,
            "environment": "production" if settings.is_production else "development",
            "debug_mode": settings.DEBUG,
        },
    )

    try:
        db_connect_start = time.time()
        logger.info("Initiating database connection...")
        await db_manager.connect()
        log_application_lifecycle(
            "database_connected",
            {
                "connection_duration": f"{time.time() - db_connect_start:.3f}s",
                "database_name": settings.MONGODB_DATABASE,
                "connection_url": settings.MONGODB_URL.split("@")[-1],
            },
        )

        indexes_start = time.time()
        logger.info("Creating/verifying database indexes...")
        await db_manager.create_indexes()
        log_application_lifecycle("database_indexes_ready", {"indexes_duration": f"{time.time() - indexes_start:.3f}s"})

    except Exception as e:
        log_application_lifecycle(
            "startup_failed",
            {
                "error": str(e),
                "error_type": type(e).__name__,
                "startup_duration": f"{time.time() - startup_start_time:.3f}s",
            },
        )
        log_error_with_context(e, {"operation": "application_startup", "phase": "database_connection"})
        raise HTTPException(status_code=503, detail="Service not ready: Database connection failed") from e

    background_tasks = {}
    try:
        logger.info("Starting background tasks...")
        background_tasks.update(
            {
                "pending_transfers": asyncio.create_task(periodic_pending_transfers()),
                "transfer_retry": asyncio.create_task(periodic_transfer_retry()),
                "security_cleanup": asyncio.create_task(periodic_security_cleanup()),
                "notification_cleanup": asyncio.create_task(periodic_notification_cleanup()),
            }
        )
        log_application_lifecycle(
            "background_tasks_started", {"task_count": len(background_tasks), "tasks": list(background_tasks.keys())}
        )
    except Exception as e:
        log_error_with_context(
            e, {"operation": "background_tasks_startup", "tasks_attempted": list(background_tasks.keys())}
        )
        logger.warning("Some background tasks failed to start, continuing with application startup")

    total_startup_duration = time.time() - startup_start_time
    log_application_lifecycle(
        "startup_completed",
        {
            "total_startup_duration": f"{total_startup_duration:.3f}s",
            "database_ready": True,
            "background_tasks_count": len(background_tasks),
        },
    )
    logger.info("BrandLink startup completed in %.3fs", total_startup_duration)

    yield

    shutdown_start_time = time.time()
    log_application_lifecycle("shutdown_initiated", {"active_background_tasks": len(background_tasks)})

    for task in background_tasks.values():
        task.cancel()

    failed_cleanups = []
    for task_name, task in background_tasks.items():
        try:
            await asyncio.wait_for(task, timeout=5.0)
        except asyncio.CancelledError:
            logger.info("Background task %s cancelled", task_name)
        except asyncio.TimeoutError:
            logger.warning("Background task %s cancellation timed out", task_name)
            failed_cleanups.append({"task": task_name, "error": "cancellation_timeout"})

    try:
        await blockchain_client.close()
        await redis_manager.close()
    except Exception as e:
        log_error_with_context(e, {"operation": "client_shutdown"})

    try:
        logger.info("Disconnecting from database...")
        await db_manager.disconnect()
        log_application_lifecycle("database_disconnected", {})
    except Exception as e:
        log_error_with_context(e, {"operation": "database_disconnection"})

    total_shutdown_duration = time.time() - shutdown_start_time
    log_application_lifecycle(
        "shutdown_completed",
        {"total_shutdown_duration": f"{total_shutdown_duration:.3f}s", "failed_cleanups": failed_cleanups},
    )
    logger.info("BrandLink shutdown completed in %.3fs", total_shutdown_duration)


app = FastAPI(
    title=APP_NAME,
    description="""
    ## BrandLink API

    Backend for brands, their manufacturing partners and their customers.

    ### Features
    - **Accounts**: brands, manufacturers and users with JWT sessions
    - **Discovery**: manufacturer search, similarity and brand recommendations
    - **Connections**: brand ↔ manufacturer partnership requests
    - **Certificates**: NFT product certificates with relayer-to-brand transfers
    - **Supply chain**: on-chain product events with tracking QR codes
    - **Media**: per-account file library with category rules
    - **Security**: session tracking, audit events and suspicious activity checks
    """,
    version=APP_VERSION,
    lifespan=lifespan,
    redirect_slashes=False,
    openapi_tags=[
        {"name": "Authentication", "description": "Registration, login and session management"},
        {"name": "Brands", "description": "Brand profiles, settings and recommendations"},
        {"name": "Manufacturers", "description": "Manufacturer profiles, search and connections"},
        {"name": "Users", "description": "End-user profiles"},
        {"name": "Notifications", "description": "In-app notifications"},
        {"name": "Certificates", "description": "NFT certificates and supply chain events"},
        {"name": "Media", "description": "Media uploads and library"},
        {"name": "Security", "description": "Security events, sessions and audit reports"},
        {"name": "Admin", "description": "Operator metrics and maintenance"},
        {"name": "Health", "description": "Service health"},
    ],
)

register_exception_handlers(app)

cors_origins = ["http://localhost:3000", "http://localhost:8000"]
cors_origins.extend(settings.cors_origins_list)
logger.info("Configuring CORS with origins: %s", cors_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
    expose_headers=["*"],
    max_age=3600,
)
app.add_middleware(RequestLoggingMiddleware)
log_application_lifecycle(
    "middleware_configured",
    {"middleware": ["CORSMiddleware", "RequestLoggingMiddleware"], "cors_origins": cors_origins},
)

routers_config = [
    ("auth", auth_router, "Authentication and session endpoints"),
    ("security", security_router, "Security events, sessions and audit endpoints"),
    ("brands", brands_router, "Brand profile, settings and recommendation endpoints"),
    ("manufacturers", manufacturers_router, "Manufacturer profile, search and connection endpoints"),
    ("users", users_router, "User profile endpoints"),
    ("notifications", notifications_router, "Notification endpoints"),
    ("certificates", certificates_router, "NFT certificate and supply chain endpoints"),
    ("media", media_router, "Media library endpoints"),
    ("health", health_router, "Health check endpoint"),
    ("admin", admin_router, "Operator metrics and maintenance endpoints"),
]

logger.info("Including API routers...")
included_routers = []
for router_name, router, description in routers_config:
    app.include_router(router)
    included_routers.append({"name": router_name, "description": description})
    logger.info("Included %s router: %s", router_name, description)

log_application_lifecycle(
    "routers_configured", {"total_routers": len(routers_config), "routers": included_routers}
)

logger.info("Setting up Prometheus metrics instrumentation...")
try:
    instrumentator = Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        should_respect_env_var=False,
        should_instrument_requests_inprogress=True,
    )
    instrumentator.add().instrument(app).expose(app, include_in_schema=False, endpoint="/metrics")
    log_application_lifecycle("prometheus_configured", {"metrics_endpoint": "/metrics"})
except Exception as e:
    log_error_with_context(e, {"operation": "prometheus_setup"})
    logger.error("Failed to configure Prometheus metrics: %s", e)


def run():
    uvicorn.run("brandlink.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG, log_level="info")


if __name__ == "__main__":
    run()
