# Vault API - FastAPI application
#
# One VaultSession per process, created from Settings and stored on
# app.state. Shutdown locks the vault so activated secret files do not
# outlive the backend.

import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI

from .. import __version__
from ..core import EventSeverity, EventType, Settings, get_audit_logger, load_settings
from ..core.audit_log import configure_audit_logger
from ..vault import SecretRegistry, VaultSession, VaultStore
from .vault_routes import router as vault_router

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, configure_audit: bool = True) -> FastAPI:
    """
    Build the API application.

    Args:
        settings: Defaults to load_settings()
        configure_audit: Point the global audit logger at settings.audit_dir on startup
    """
    settings = settings or load_settings()

    app = FastAPI(
        title="Lockbox API",
        description="Local encrypted secrets vault",
        version=__version__,
    )

    store = VaultStore(settings.data_dir)
    app.state.settings = settings
    app.state.vault_session = VaultSession(store, auto_lock_seconds=settings.auto_lock_seconds)
    app.state.secret_registry = SecretRegistry(store)

    app.include_router(vault_router)

    @app.on_event("startup")
    async def startup_event():
        if configure_audit:
            configure_audit_logger(settings.audit_dir)
        get_audit_logger().log_event(
            event_type=EventType.SYSTEM_START,
            severity=EventSeverity.INFO,
            message="Lockbox API server starting",
            details={"version": __version__, "data_dir": str(settings.data_dir)},
        )

    @app.on_event("shutdown")
    async def shutdown_event():
        """Lock the vault (removing activated files) on shutdown."""
        try:
            removed = app.state.vault_session.close()
        except Exception:
            logger.exception("Failed to lock vault on shutdown")
            removed = 0

        get_audit_logger().log_event(
            event_type=EventType.SYSTEM_STOP,
            severity=EventSeverity.INFO,
            message="Lockbox API server shutting down",
            details={"files_removed": removed},
        )

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    return app


def start_api_server(settings: Settings):
    """
    Start the FastAPI server.

    Binds to settings.host (default: localhost only). The audit logger is
    expected to be configured by the caller.
    """
    uvicorn.run(create_app(settings, configure_audit=False), host=settings.host, port=settings.port, log_level="info")
