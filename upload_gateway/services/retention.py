import asyncio

from upload_gateway.logger_config import setup_logger
from upload_gateway.services.storage_manager import StorageManager

logger = setup_logger()


async def retention_loop(storage_manager: StorageManager, max_age_seconds: float, interval_seconds: float):
    """Sweep expired uploads every ``interval_seconds`` until cancelled.

    The first sweep runs one interval after startup. A failing cycle is
    logged and the next cycle is the retry.
    """
    logger.info(
        f"Retention sweeper started: max age {max_age_seconds / 3600:g}h, "
        f"every {interval_seconds}s"
    )
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await storage_manager.sweep_expired(max_age_seconds)
        except Exception as e:
            logger.error(f"[clean] error: {str(e)}", exc_info=True)
