"""Run the caption server: python -m callcaptions"""
from __future__ import annotations

import logging

import uvicorn

from callcaptions.config import get_settings
from callcaptions.main import app

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()
    config = uvicorn.Config(
        app,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
    logger.info("Starting caption server on %s:%s", settings.HOST, settings.PORT)
    uvicorn.Server(config).run()


if __name__ == "__main__":
    main()
