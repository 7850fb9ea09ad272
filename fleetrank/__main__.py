"""Service entry point."""

import logging

import uvicorn

from .config import config
from .webapp import app

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Suppress APScheduler INFO logs
logging.getLogger("apscheduler").setLevel(logging.WARNING)

# Ensure uvicorn logs show in terminal
logging.getLogger("uvicorn").setLevel(logging.INFO)
logging.getLogger("uvicorn.error").setLevel(logging.INFO)
logging.getLogger("uvicorn.access").setLevel(logging.INFO)


def main() -> None:
    """Main entry point."""
    logger.info(f"Starting FleetRank API on {config.webapp_host}:{config.webapp_port}")
    uvicorn.run(
        app,
        host=config.webapp_host,
        port=config.webapp_port,
        log_level="info",
        access_log=True,
    )


if __name__ == "__main__":
    main()
