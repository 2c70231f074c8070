"""
Route registration for the connection API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Translate Results into HTTP status codes
- Pull dependencies from app.state
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncGenerator

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from constants import DEFAULT_STRATEGY
from observability.logger import log_event
from observability.metrics import timed
from orchestrator.connection_state import ConnectionState, to_payload
from orchestrator.manager import ConnectionManager
from orchestrator.result import Result
from session.connection_service import ConnectionService, InvalidRequestError


class ConnectBody(BaseModel):
    node_id: str
    strategy: str = DEFAULT_STRATEGY


def _result_response(result: Result, manager: ConnectionManager) -> JSONResponse:
    state = to_payload(manager.current_state())
    if result.ok:
        return JSONResponse({"ok": True, "state": state})

    assert result.error is not None
    return JSONResponse(
        {
            "ok": False,
            "error": result.error.reason.value,
            "message": result.error.message,
            "state": state,
        },
        status_code=409,
    )


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""

    def _manager() -> ConnectionManager:
        return app.state.manager

    def _service() -> ConnectionService:
        return app.state.service

    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.get("/strategies")
    async def strategies() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        catalog = _manager().catalog
        return {
            "default": catalog.default.name,
            "strategies": [
                catalog.resolve(name).describe() for name in catalog.available()
            ],
        }

    @app.get("/state")
    async def state() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        manager = _manager()
        strategy = manager.current_strategy()
        return {
            "state": to_payload(manager.current_state()),
            "strategy": strategy.name if strategy is not None else None,
        }

    @app.post("/connect")
    async def connect(body: ConnectBody) -> JSONResponse: # pyright: ignore[reportUnusedFunction]
        with timed("http_connect", node_id=body.node_id):
            try:
                result = await _service().connect(body.node_id, body.strategy)
            except InvalidRequestError as exc:
                return JSONResponse(
                    {"ok": False, "error": "INVALID_REQUEST", "message": str(exc)},
                    status_code=400,
                )
        return _result_response(result, _manager())

    @app.post("/disconnect")
    async def disconnect() -> JSONResponse: # pyright: ignore[reportUnusedFunction]
        with timed("http_disconnect"):
            result = await _service().disconnect()
        return _result_response(result, _manager())

    @app.get("/sessions")
    async def sessions() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        return {"sessions": [r.to_payload() for r in _service().history()]}

    @app.get("/sessions/current")
    async def current_session() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        record = _service().current_session()
        return {"session": record.to_payload() if record is not None else None}

    @app.websocket("/ws/state")
    async def state_stream(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        stream = _manager().observe_state()
        sender = asyncio.create_task(_send_states(ws, stream))
        receiver = asyncio.create_task(_wait_for_client_close(ws))

        try:
            done, _ = await asyncio.wait(
                {sender, receiver},
                return_when=asyncio.FIRST_COMPLETED,
            )

            if sender in done:
                # Manager stopped; end the socket from our side
                receiver.cancel()
                await asyncio.gather(receiver, return_exceptions=True)
                await ws.close()

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "WS_FATAL_ERROR",
                "exception": type(exc).__name__,
                "message": str(exc),
            })

        finally:
            for task in (sender, receiver):
                task.cancel()
            await asyncio.gather(sender, receiver, return_exceptions=True)
            await stream.aclose()


async def _send_states(
    ws: WebSocket,
    stream: AsyncGenerator[ConnectionState, None],
) -> None:
    try:
        async for value in stream:
            await ws.send_json(to_payload(value))

    except WebSocketDisconnect:
        pass

    except Exception as exc:  # pylint: disable=broad-exception-caught
        log_event({
            "event_type": "WS_FATAL_ERROR",
            "exception": type(exc).__name__,
            "message": str(exc),
        })


async def _wait_for_client_close(ws: WebSocket) -> None:
    """Drain inbound frames until the client goes away."""
    while True:
        msg = await ws.receive()
        if msg["type"] == "websocket.disconnect":
            return
