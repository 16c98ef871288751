"""FastAPI application factory.

Assembles request logging, fault handlers and the API routers, and owns the
contact store lifecycle: opened on startup, disposed on shutdown.
This module is the authoritative app object: reconciler/main.py re-exports it.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from reconciler.api.exception_handlers import register_exception_handlers
from reconciler.api.middleware.request_log import RequestLogMiddleware
from reconciler.api.routes.health import router as health_router
from reconciler.api.routes.identify import router as identify_router
from reconciler.core.logging import setup_logging
from reconciler.core.settings import get_settings
from reconciler.db.session import ContactStore

logger = logging.getLogger(__name__)


def create_app(store: ContactStore | None = None) -> FastAPI:
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()
        if getattr(app.state, "store", None) is None:
            app.state.store = ContactStore.from_settings(settings)
        app.state.store.initialize()
        logger.info("%s %s started (env=%s)", settings.app_name, settings.app_version, settings.app_env)
        try:
            yield
        finally:
            app.state.store.close()
            logger.info("%s shut down", settings.app_name)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.store = store

    app.add_middleware(RequestLogMiddleware)
    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(identify_router)
    return app


app = create_app()
