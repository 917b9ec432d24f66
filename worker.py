"""Worker mode entrypoint for running background services without the web server."""

import asyncio
import sys

from app.lib.logger import configure_logger
from app.services.infrastructure.startup_service import run_standalone

logger = configure_logger(__name__)


async def main():
    """Run trade sync and the agent bots."""
    logger.info("Starting sharegate backend in worker mode...")
    logger.info("Worker mode - Web server disabled, running background services only")

    try:
        await run_standalone()
    except KeyboardInterrupt:
        logger.info("Worker mode interrupted by user")
    except Exception as e:
        logger.error(f"Critical error in worker mode: {e}", exc_info=True)
        sys.exit(1)
    finally:
        logger.info("Worker mode shutdown complete")


if __name__ == "__main__":
    asyncio.run(main())
