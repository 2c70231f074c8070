"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware
- Own the ConnectionManager lifecycle (start on startup, stop on shutdown)
- Register routes
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import AppConfig
from observability import logger
from orchestrator.manager import ConnectionManager
from session.connection_service import ConnectionService
from session.notifications import NotificationWatcher, Notifier
from session.session_store import SessionStore

from server.routes import register_routes


def create_app(
    config: AppConfig | None = None,
    *,
    manager: ConnectionManager | None = None,
    notifier: Notifier | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with different configurations or an injected manager
    - Environment-specific setup
    - ASGI server compatibility

    One manager per app: it is created here, not as a module global.
    """
    config = config if config is not None else AppConfig.load_from_env()
    logger.configure(enabled=config.enable_json_logs)

    manager = manager if manager is not None else ConnectionManager()
    service = ConnectionService(
        manager=manager,
        store=SessionStore(),
        user_id=config.user_id,
    )
    watcher = NotificationWatcher(manager=manager, notifier=notifier)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        await manager.start()
        service.start()
        watcher.start()
        try:
            yield
        finally:
            await watcher.stop()
            await manager.stop()
            await service.stop()

    app = FastAPI(title="Node Connection API", lifespan=lifespan)

    app.state.config = config
    app.state.manager = manager
    app.state.service = service
    app.state.watcher = watcher

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    register_routes(app)

    return app
