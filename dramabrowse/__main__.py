"""Run the catalog facade with ``python -m dramabrowse``."""

from __future__ import annotations

import logging

import uvicorn

from app.config import settings

logger = logging.getLogger("dramabrowse")


def main() -> None:
    """Serve ``app.main:app`` on the configured host and port."""

    logger.info(
        "Serving %s against %s (locale %s, %s storage)",
        settings.app_name,
        settings.catalog_api_url,
        settings.default_locale,
        settings.storage_backend,
    )
    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
        log_level="info",
    )


if __name__ == "__main__":  # pragma: no cover - runtime entrypoint
    main()
