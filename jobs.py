import asyncio
import logging
from datetime import datetime, timedelta

from database import utcnow
from services.token_service import TokenService

logger = logging.getLogger(__name__)


def seconds_until_next_hour(now: datetime) -> float:
    next_hour = now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
    return (next_hour - now).total_seconds()


async def run_token_cleanup(token_service: TokenService) -> int:
    try:
        deleted = await asyncio.to_thread(token_service.cleanup)
        logger.info(f"Token cleanup job removed {deleted} record(s)")
        return deleted
    except Exception as e:
        logger.error(f"Token cleanup job failed: {e}")
        return 0


async def cleanup_tokens_hourly(token_service: TokenService):
    """Background task running the token cleanup at the top of every hour."""
    while True:
        await asyncio.sleep(seconds_until_next_hour(utcnow()))
        await run_token_cleanup(token_service)
