"""
Periodic background jobs started by the application lifespan.

Each loop sleeps for its configured interval, runs one pass and logs the
result. Errors in a pass are logged and the loop keeps going; cancellation
ends it.
"""

import asyncio

from brandlink.config import settings
from brandlink.managers.logging_manager import get_logger
from brandlink.services.certificate_service import certificate_service
from brandlink.services.notification_service import notification_service
from brandlink.services.security_service import security_service

logger = get_logger(prefix="[Periodics]")


async def periodic_pending_transfers() -> None:
    """Transfer certificates whose scheduled transfer time has come."""
    while True:
        try:
            await asyncio.sleep(settings.PENDING_TRANSFER_INTERVAL_SECONDS)
            result = await certificate_service.process_pending_transfers()
            if result["processed"]:
                logger.info("Pending transfers pass: %s", result)
        except asyncio.CancelledError:
            logger.info("Pending transfer loop cancelled")
            break
        except Exception as e:
            logger.error("Error in pending transfer loop: %s", e, exc_info=True)


async def periodic_transfer_retry() -> None:
    """Retry failed transfers whose backoff has elapsed."""
    while True:
        try:
            await asyncio.sleep(settings.TRANSFER_RETRY_INTERVAL_SECONDS)
            result = await certificate_service.retry_failed_transfers()
            if result["processed"]:
                logger.info("Transfer retry pass: %s", result)
        except asyncio.CancelledError:
            logger.info("Transfer retry loop cancelled")
            break
        except Exception as e:
            logger.error("Error in transfer retry loop: %s", e, exc_info=True)


async def periodic_security_cleanup() -> None:
    while True:
        try:
            await asyncio.sleep(settings.CLEANUP_INTERVAL_SECONDS)
            await security_service.cleanup_expired_data()
        except asyncio.CancelledError:
            logger.info("Security cleanup loop cancelled")
            break
        except Exception as e:
            logger.error("Error in security cleanup loop: %s", e, exc_info=True)


async def periodic_notification_cleanup() -> None:
    while True:
        try:
            await asyncio.sleep(settings.CLEANUP_INTERVAL_SECONDS)
            await notification_service.cleanup_expired()
        except asyncio.CancelledError:
            logger.info("Notification cleanup loop cancelled")
            break
        except Exception as e:
            logger.error("Error in notification cleanup loop: %s", e, exc_info=True)
