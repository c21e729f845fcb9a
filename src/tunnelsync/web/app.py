"""FastAPI application factory for the tunnel control API."""

from __future__ import annotations

from fastapi import FastAPI

from tunnelsync import __version__
from tunnelsync.config import TunnelSyncConfig
from tunnelsync.tunnel.provider import TunnelProvider


def create_app(
    provider: TunnelProvider,
    config: TunnelSyncConfig | None = None,
) -> FastAPI:
    """Build the control API around a running provider."""
    config = config or TunnelSyncConfig.load()

    app = FastAPI(
        title="TunnelSync",
        version=__version__,
        docs_url="/api/docs",
    )
    app.state.config = config
    app.state.provider = provider

    from tunnelsync.web.api.commands import router as commands_router

    app.include_router(commands_router, prefix="/api")
    return app
