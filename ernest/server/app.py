from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI

from ernest import __version__
from ernest.core.event_hub import AsyncEventHub
from ernest.core.events import EventHubSink
from ernest.core.export_jobs import ExportJobManager
from ernest.exporters.pipeline import create_export_manager
from ernest.security.credentials import CredentialVault
from ernest.server.core.errors import register_exception_handlers
from ernest.server.routes import credentials, events, export, publish

LOGGER = logging.getLogger(__name__)


def create_app(
    *,
    manager: Optional[ExportJobManager] = None,
    vault: Optional[CredentialVault] = None,
    hub: Optional[AsyncEventHub] = None,
) -> FastAPI:
    """Application factory used by ``ernest serve`` and ASGI servers.

    The job registry, vault and event hub live on ``app.state`` for the
    lifetime of the app.  Pass ``manager`` to supply a pre-wired job manager
    (tests use a deferred executor).
    """
    app = FastAPI(title="Ernest", version=__version__)

    register_exception_handlers(app)

    event_hub = hub or AsyncEventHub()
    credential_vault = vault or CredentialVault()
    export_manager = manager or create_export_manager(
        EventHubSink(event_hub), vault=credential_vault
    )
    app.state.event_hub = event_hub
    app.state.vault = credential_vault
    app.state.export_manager = export_manager

    @app.on_event("shutdown")
    async def _on_shutdown() -> None:
        export_manager.shutdown(wait=False)

    for module in (export, events, credentials, publish):
        app.include_router(module.router)

    @app.get("/health")
    def health() -> dict[str, object]:
        return {"ok": True, "version": __version__}

    LOGGER.info("Ernest app created", extra={"service": credential_vault.service})
    return app


__all__ = ["create_app"]
