"""Application entry point for the storefront API server."""

from __future__ import annotations

import logging
import os

import uvicorn

from spl_storefront.config.settings import AppConfig


def main() -> None:
    """Start the storefront API server."""
    config = AppConfig()
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    reload = os.getenv("STOREFRONT_RELOAD", "false").lower() in ("1", "true", "yes")
    uvicorn.run(
        "spl_storefront.api.app:create_app",
        factory=True,
        host=config.server.host,
        port=config.server.port,
        reload=reload,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
