"""
Main entry point for the CageMatch API server.
"""

import asyncio
import sys
from typing import Optional
import structlog
import uvicorn

from .config import get_config, get_db_config
from .utils.logging import setup_logging
from .api.app import create_app

logger: Optional[structlog.BoundLogger] = None


async def main() -> bool:
    """Configure logging, build the app and serve it until stopped."""
    global logger
    config = get_config()
    logger = setup_logging(config)
    logger.info("Starting CageMatch API", host=config.host, port=config.port,
                environment=config.environment)

    app = create_app(config, get_db_config())
    server = uvicorn.Server(uvicorn.Config(
        app,
        host=config.host,
        port=config.port,
        log_config=None,
        log_level=config.log_level.lower(),
    ))

    try:
        await server.serve()
    except Exception as e:
        logger.error("Server stopped unexpectedly", error=str(e))
        return False

    logger.info("CageMatch API shutdown complete")
    return True


def cli_main():
    """CLI entry point for console_scripts."""
    try:
        success = asyncio.run(main())
    except KeyboardInterrupt:
        print("Application interrupted by user")
        sys.exit(0)
    except Exception as e:
        print(f"Application failed: {e}")
        sys.exit(1)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    cli_main()
