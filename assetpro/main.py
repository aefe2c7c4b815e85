from __future__ import annotations

import logging

import requests
from fastapi import FastAPI

from .config import Settings, load_settings
from .ledger import Ledger
from .monitor import ConnectionMonitor
from .routers import admin, portal, store
from .storage import LocalStore, PersistenceAdapter

logger = logging.getLogger("assetpro.api")


def create_app(settings: Settings | None = None, *, session: requests.Session | None = None) -> FastAPI:
    settings = settings or load_settings()
    local = LocalStore(settings.db_path, timeout_sec=settings.sqlite_timeout_sec)
    adapter = PersistenceAdapter(
        local,
        default_mode=settings.storage_mode,
        default_endpoint=settings.sql_endpoint,
        remote_timeout_sec=settings.remote_timeout_sec,
        session=session,
    )
    ledger = Ledger(adapter, strict_references=settings.strict_references, seed_demo=settings.seed_demo)
    ledger.load(reconcile=settings.reconcile_on_load)
    monitor = ConnectionMonitor(
        adapter.check_connection,
        interval_sec=settings.health_interval_sec,
        enabled=settings.health_monitor_enabled,
    )

    app = FastAPI(
        title="AssetPro Maintenance Ledger API",
        version="1.0.0",
    )
    app.state.settings = settings
    app.state.ledger = ledger
    app.state.monitor = monitor

    # versioned routes first; the store router matches /api/{collection}
    app.include_router(admin.router, prefix="/api/v1")
    app.include_router(portal.router, prefix="/api/v1")
    app.include_router(store.router, prefix="/api")

    @app.on_event("startup")
    def start_connection_monitor():
        monitor.start()

    @app.on_event("shutdown")
    def stop_connection_monitor():
        monitor.stop()

    logger.info("AssetPro API ready (mode=%s, db=%s)", adapter.get_mode(), settings.db_path)
    return app


app = create_app()
