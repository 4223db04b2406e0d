"""
Main entry point for the avatar worker service.
Starts all components:
- HTTP API (drain endpoints + live-session websocket)
- Drain scheduler (when DRAIN_SCHEDULE_INTERVAL > 0)
"""
import asyncio
import sys
import uvicorn
from avatar_worker import config
from avatar_worker.utils import get_logger

logger = get_logger(__name__)


async def main():
    """Main async entry point that runs the HTTP server."""
    logger.info("=" * 60)
    logger.info("🚀 Starting Avatar Worker Service")
    logger.info("=" * 60)

    if config.DRAIN_SCHEDULE_INTERVAL > 0:
        logger.info(f"Drain scheduler enabled (every {config.DRAIN_SCHEDULE_INTERVAL}s)")
    else:
        logger.info("Drain scheduler disabled, drains run on HTTP trigger only")

    server = uvicorn.Server(uvicorn.Config(
        "avatar_worker.server:app",
        host=config.HTTP_HOST,
        port=config.HTTP_PORT,
        log_level=config.LOG_LEVEL.lower(),
    ))
    logger.info(f"✓ HTTP server listening on {config.HTTP_HOST}:{config.HTTP_PORT}")
    logger.info("=" * 60)

    # uvicorn installs its own SIGINT/SIGTERM handlers and runs the app shutdown
    await server.serve()
    logger.info("✓ Shutdown complete")


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("✓ Shutdown complete")
        sys.exit(0)


if __name__ == "__main__":
    run()
