"""Run the API server: ``python -m reconciler``.

Uvicorn handles SIGINT/SIGTERM; in-flight requests get
``SHUTDOWN_TIMEOUT_SECONDS`` to finish before the process exits.
"""
from __future__ import annotations

import uvicorn

from reconciler.core.logging import setup_logging
from reconciler.core.settings import get_settings


def main() -> None:
    settings = get_settings()
    setup_logging()
    uvicorn.run(
        "reconciler.main:app",
        host=settings.host,
        port=settings.port,
        log_config=None,
        timeout_graceful_shutdown=settings.shutdown_timeout_seconds,
    )


if __name__ == "__main__":
    main()
