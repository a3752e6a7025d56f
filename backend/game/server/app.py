from __future__ import annotations

import contextlib
import json
from typing import TYPE_CHECKING, TypeVar

import structlog
from pydantic import BaseModel, ValidationError
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute

from game.logic.enums import Role
from game.logic.exceptions import RoomCodeTakenError
from game.logic.room_code import normalize_room_code
from game.messaging.router import MessageRouter
from game.server.settings import HostSettings
from game.server.types import AutoDrawRequest, OpenRoomRequest, ToastRequest, VoiceModeRequest
from game.server.websocket import websocket_endpoint
from game.session.host import RoomConfig
from game.session.registry import RoomRegistry
from game.session.store import SessionStore, resolve_host_restore
from shared.build_info import get_build_info
from shared.logging import setup_logging
from shared.storage import FileStorage

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.requests import Request
    from starlette.websockets import WebSocket

    from game.session.host import HostRoom

_MAX_REQUEST_BODY_SIZE = 4096

M = TypeVar("M", bound=BaseModel)


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", **get_build_info().as_dict()})


async def status(request: Request) -> JSONResponse:
    registry: RoomRegistry = request.app.state.registry
    settings: HostSettings = request.app.state.settings
    return JSONResponse(
        {
            "status": "ok",
            **get_build_info().as_dict(),
            "rooms": registry.room_count,
            "active_rooms": sum(1 for room in registry.rooms if room.started),
            "connected_players": sum(len(room.directory.connected_players) for room in registry.rooms),
            "max_rooms": settings.max_rooms,
        },
    )


async def _read_body(request: Request, model: type[M]) -> M | JSONResponse:
    """Parse a small JSON body into ``model``. An empty body means all defaults."""
    try:
        raw_body = await request.body()
        if len(raw_body) > _MAX_REQUEST_BODY_SIZE:
            return JSONResponse({"error": "Request body too large"}, status_code=413)
        body = json.loads(raw_body) if raw_body.strip() else {}
        if not isinstance(body, dict):
            raise TypeError("body must be a JSON object")
        return model(**body)
    except (ValueError, TypeError, json.JSONDecodeError, UnicodeDecodeError, ValidationError):  # fmt: skip
        return JSONResponse({"error": "Invalid request body"}, status_code=400)


def _get_room(request: Request) -> HostRoom | None:
    registry: RoomRegistry = request.app.state.registry
    return registry.get(normalize_room_code(request.path_params["room_code"]))


def _room_not_found() -> JSONResponse:
    return JSONResponse({"error": "Room not found"}, status_code=404)


async def open_room(request: Request) -> JSONResponse:
    registry: RoomRegistry = request.app.state.registry
    settings: HostSettings = request.app.state.settings
    store: SessionStore | None = request.app.state.store

    parsed = await _read_body(request, OpenRoomRequest)
    if isinstance(parsed, JSONResponse):
        return parsed

    if registry.room_count >= settings.max_rooms:
        return JSONResponse({"error": "Server at capacity"}, status_code=503)

    saved = None
    if store is not None:
        saved = resolve_host_restore(store, lambda _state: parsed.restore)

    try:
        room = await registry.open_room(restore=saved)
    except RoomCodeTakenError as e:
        logger.warning("could not open room", room_code=e.room_code, attempts=e.attempts)
        return JSONResponse({"error": "Room code unavailable"}, status_code=409)

    return JSONResponse(
        {"room_code": room.room_code, "identity": room.identity, "restored": saved is not None},
        status_code=201,
    )


async def get_room(request: Request) -> JSONResponse:
    room = _get_room(request)
    if room is None:
        return _room_not_found()
    return JSONResponse(room.summary())


async def close_room(request: Request) -> JSONResponse:
    registry: RoomRegistry = request.app.state.registry
    if not await registry.close_room(normalize_room_code(request.path_params["room_code"])):
        return _room_not_found()
    return JSONResponse({"status": "closed"})


async def draw(request: Request) -> JSONResponse:
    room = _get_room(request)
    if room is None:
        return _room_not_found()
    if room.machine.is_exhausted:
        return JSONResponse({"error": "No numbers left to draw"}, status_code=409)
    number = await room.draw()
    if number is None:
        return JSONResponse({"error": "A draw is already in progress"}, status_code=409)
    return JSONResponse({"number": number, "remaining": room.machine.remaining})


async def reset(request: Request) -> JSONResponse:
    room = _get_room(request)
    if room is None:
        return _room_not_found()
    await room.reset()
    return JSONResponse({"status": "reset"})


async def auto_draw(request: Request) -> JSONResponse:
    room = _get_room(request)
    if room is None:
        return _room_not_found()
    parsed = await _read_body(request, AutoDrawRequest)
    if isinstance(parsed, JSONResponse):
        return parsed
    if parsed.enabled:
        if not room.start_auto_draw(parsed.interval_seconds):
            return JSONResponse({"error": "No numbers left to draw"}, status_code=409)
    else:
        await room.stop_auto_draw()
    return JSONResponse({"auto_draw": room.is_auto_drawing})


async def voice_mode(request: Request) -> JSONResponse:
    room = _get_room(request)
    if room is None:
        return _room_not_found()
    parsed = await _read_body(request, VoiceModeRequest)
    if isinstance(parsed, JSONResponse):
        return parsed
    await room.set_voice_mode(parsed.mode)
    return JSONResponse({"voice_mode": room.voice_mode})


async def toast(request: Request) -> JSONResponse:
    room = _get_room(request)
    if room is None:
        return _room_not_found()
    parsed = await _read_body(request, ToastRequest)
    if isinstance(parsed, JSONResponse):
        return parsed
    await room.toast(parsed.message, parsed.style)
    return JSONResponse({"status": "sent"})


def create_app(
    settings: HostSettings | None = None,
    registry: RoomRegistry | None = None,
    message_router: MessageRouter | None = None,
    store: SessionStore | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = HostSettings()

    if registry is None:
        if store is None:
            store = SessionStore(FileStorage(settings.storage_dir), Role.HOST)
        registry = RoomRegistry(
            RoomConfig.from_settings(settings),
            store=store,
            open_attempts=settings.open_room_attempts,
            retry_seconds=settings.open_room_retry_seconds,
        )

    if message_router is None:
        message_router = MessageRouter(registry, handshake_timeout_seconds=settings.handshake_timeout_seconds)

    async def ws_endpoint(websocket: WebSocket) -> None:
        await websocket_endpoint(websocket, message_router, settings)

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/status", status, methods=["GET"]),
        Route("/rooms", open_room, methods=["POST"]),
        Route("/rooms/{room_code}", get_room, methods=["GET"]),
        Route("/rooms/{room_code}", close_room, methods=["DELETE"]),
        Route("/rooms/{room_code}/draw", draw, methods=["POST"]),
        Route("/rooms/{room_code}/reset", reset, methods=["POST"]),
        Route("/rooms/{room_code}/auto-draw", auto_draw, methods=["POST"]),
        Route("/rooms/{room_code}/voice-mode", voice_mode, methods=["POST"]),
        Route("/rooms/{room_code}/toast", toast, methods=["POST"]),
        WebSocketRoute("/ws/{room_code}", ws_endpoint),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncGenerator[None]:
        yield
        await registry.close_all()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Content-Type"],
    )
    app.state.settings = settings
    app.state.registry = registry
    app.state.store = store

    logger.info("host server ready", build=get_build_info().label)
    return app


def get_app() -> Starlette:  # pragma: no cover  # deadcode: ignore
    """ASGI application factory for production use (e.g., uvicorn --factory)."""
    _settings = HostSettings()
    setup_logging(log_dir=_settings.log_dir)
    return create_app(settings=_settings)
