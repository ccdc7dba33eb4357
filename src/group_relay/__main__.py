"""Run the relay with uvicorn: ``python -m group_relay``."""

from __future__ import annotations

import logging

import uvicorn

from .config import get_settings
from .observability import setup_logging

logger = logging.getLogger("group_relay")


def main() -> None:
    setup_logging()
    settings = get_settings()
    logger.info("listening on http://localhost:%s", settings.port)
    uvicorn.run(
        "group_relay.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
