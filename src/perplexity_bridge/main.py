"""Entrypoints: run the bridge as an HTTP server or over stdio."""

import asyncio
import sys

import uvicorn

from perplexity_bridge.api.app import create_app
from perplexity_bridge.config.settings import Settings
from perplexity_bridge.exceptions import ConfigurationError
from perplexity_bridge.observability.logger import get_logger, setup_logging
from perplexity_bridge.stdio.server import run

logger = get_logger("main")


def main() -> None:
    settings = Settings()
    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


def stdio_main() -> None:
    settings = Settings()
    setup_logging(settings.log_level, settings.log_json)
    try:
        asyncio.run(run(settings))
    except ConfigurationError as e:
        logger.error("startup_failed", error=str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
