"""Entry point for running: python -m streamchain.serve"""

import logging

import uvicorn

from streamchain.config import Settings, configure_logging

from .app import create_app

logger = logging.getLogger("streamchain.serve")


if __name__ == "__main__":
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    app = create_app(settings)

    display_host = "localhost" if settings.host in {"0.0.0.0", "::"} else settings.host
    logger.info("Endpoint: http://%s:%d/api/chat", display_host, settings.port)
    logger.info("Docs: http://%s:%d/docs", display_host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port)
