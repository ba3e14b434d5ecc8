"""
Entry point for the SSS backend.

This module creates the FastAPI application, includes all API routers,
installs the error handlers and prepares the shared in-process state
(category classifier and live channel). Run with:

    uvicorn sss_backend.main:app --reload

"""

from __future__ import annotations

import logging
from fastapi import FastAPI

from .api import api_router
from .core.config import get_app_env, settings
from .core.db import SessionLocal, engine
from .core.errors import install_error_handlers, log_exception
from .core.logging_config import setup_logging
from .models import Base
from .services.category_classifier import build_default_classifier
from .services.live_channel import LiveChannel
from .services.seed import seed_admin_user, seed_default_category


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title="SSS Backend", version="0.1.0")
    install_error_handlers(app)
    app.include_router(api_router)
    app.state.category_classifier = build_default_classifier()
    app.state.live_channel = LiveChannel()

    @app.on_event("startup")
    def _init_db() -> None:
        logger = logging.getLogger("startup")
        env = get_app_env()
        if settings.auto_create_db:
            try:
                Base.metadata.create_all(bind=engine)
            except Exception as exc:
                log_exception(logger, "DB create_all failed", exc=exc)
                if env == "prod":
                    raise
        if settings.auto_seed_default_category:
            try:
                with SessionLocal() as db:
                    seed_default_category(db)
            except Exception as exc:
                log_exception(logger, "Seed default category failed", exc=exc)
                if env == "prod":
                    raise
        if settings.auto_seed_admin_user:
            try:
                with SessionLocal() as db:
                    seed_admin_user(db)
            except Exception as exc:
                log_exception(logger, "Seed admin user failed", exc=exc)
                if env == "prod":
                    raise

    return app


app = create_app()
