"""
Delete session nodes whose refresh window closed more than
SESSION_RETENTION_DAYS ago.  Meant for cron.

Usage:
    uv run python -m authgate.scripts.sweep_sessions
"""

import asyncio
import logging

from authgate.core.config import settings
from authgate.main import configure_logging
from authgate.services.registry import build_services

logger = logging.getLogger("authgate.scripts.sweep_sessions")


async def sweep() -> int:
    services = build_services(settings)
    try:
        removed = await services.principals.sweep_sessions(settings.session_retention)
    finally:
        await services.storage.close()
    logger.info("Removed %d session node(s) older than %s", removed, settings.session_retention)
    return removed


if __name__ == "__main__":
    configure_logging(settings)
    asyncio.run(sweep())
