"""Starlette app: HTTP routes + WebSocket + static guest/host pages."""
import asyncio
import json
import logging
import uuid
from pathlib import Path
from typing import Optional

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute, Mount
from starlette.staticfiles import StaticFiles
from starlette.websockets import WebSocket, WebSocketDisconnect

from ..config import APP_VERSION, PUBLIC_DIR
from ..catalogue import Catalogue, SOURCE_KARAFUN
from ..coordinator import QueueCoordinator, QUEUE_EVENT
from ..errors import ValidationError
from .state import KaraokeState

logger = logging.getLogger(__name__)

# Shared state, built by create_app()
_state = KaraokeState()
_coordinator: Optional[QueueCoordinator] = None
_catalogue: Optional[Catalogue] = None


def _ok(**extra) -> JSONResponse:
    return JSONResponse({"ok": True, **extra, **_coordinator.snapshot()})


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=400)


async def _json_body(request: Request) -> dict:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Request body must be JSON")
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


# ── Health ───────────────────────────────────────────────────────────────────

async def health(request):
    return JSONResponse({
        "status": "degraded" if _catalogue.warnings else "ok",
        "version": APP_VERSION,
        "catalogues": _catalogue.counts(),
        "queue_length": len(_coordinator),
        "clients": _state.client_count,
        "warnings": _catalogue.warnings,
    })


# ── Catalogues ───────────────────────────────────────────────────────────────

async def catalogue_jk(request):
    return JSONResponse(_catalogue.jk)


async def catalogue_jk_popular(request):
    return JSONResponse(_catalogue.jk_popular)


async def catalogue_kf_genres(request):
    return JSONResponse(_catalogue.kf_genres)


async def search(request):
    q = request.query_params.get("q", "")
    source = request.query_params.get("source", SOURCE_KARAFUN)
    return JSONResponse(_catalogue.search(q, source))


# ── Queue (guests) ───────────────────────────────────────────────────────────

async def get_queue(request):
    return JSONResponse(_coordinator.snapshot())


async def add_to_queue(request):
    try:
        body = await _json_body(request)
        entry = _coordinator.submit(body.get("song"), body.get("singerName"))
    except ValidationError as e:
        return _bad_request(str(e))
    return _ok(entry=entry)


# ── Host actions ─────────────────────────────────────────────────────────────

async def host_next(request):
    _coordinator.advance()
    return _ok()


async def host_done(request):
    _coordinator.complete()
    return _ok()


async def host_remove(request):
    _coordinator.remove(request.path_params["queue_id"])
    return _ok()


async def host_reorder(request):
    try:
        body = await _json_body(request)
        _coordinator.reorder(body.get("orderedIds"))
    except ValidationError as e:
        return _bad_request(str(e))
    return _ok()


async def host_move_up(request):
    _coordinator.move_up(request.path_params["queue_id"])
    return _ok()


async def host_move_down(request):
    _coordinator.move_down(request.path_params["queue_id"])
    return _ok()


# ── WebSocket ────────────────────────────────────────────────────────────────

async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()
    client_id = str(uuid.uuid4())
    queue = _state.subscribe(client_id)
    logger.info("WS connected: %s", client_id)

    # Send initial sync
    await websocket.send_json({"type": QUEUE_EVENT, "data": _coordinator.snapshot()})

    # Two tasks: one reads from client, one writes from queue
    async def _reader():
        try:
            while True:
                data = await websocket.receive_json()
                _handle_ws_message(client_id, data)
        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.error("WS reader error: %s", e)

    async def _writer():
        try:
            while True:
                event, data = await queue.get()
                await websocket.send_json({"type": event, "data": data})
        except Exception as e:
            logger.debug("WS writer stopped: %s", e)

    reader_task = asyncio.create_task(_reader())
    writer_task = asyncio.create_task(_writer())

    try:
        done, pending = await asyncio.wait(
            [reader_task, writer_task],
            return_when=asyncio.FIRST_COMPLETED,
        )
        for task in pending:
            task.cancel()
    finally:
        _state.unsubscribe(client_id)
        logger.info("WS disconnected: %s", client_id)


def _handle_ws_message(client_id: str, data):
    """Route host commands sent over the socket to the coordinator."""
    if not isinstance(data, dict):
        logger.warning("Ignoring non-object WS message from %s", client_id)
        return

    msg_type = data.get("type", "")

    try:
        if msg_type == "next":
            _coordinator.advance()

        elif msg_type == "done":
            _coordinator.complete()

        elif msg_type == "remove":
            _coordinator.remove(int(data.get("queueId")))

        elif msg_type == "reorder":
            _coordinator.reorder(data.get("orderedIds"))

        elif msg_type == "move_up":
            _coordinator.move_up(int(data.get("queueId")))

        elif msg_type == "move_down":
            _coordinator.move_down(int(data.get("queueId")))

        else:
            logger.warning("Unknown WS message type: %s", msg_type)

    except (ValidationError, TypeError, ValueError) as e:
        logger.warning("Rejected WS %s from %s: %s", msg_type, client_id, e)


# ── App factory ──────────────────────────────────────────────────────────────

def create_app(data_dir: Optional[Path] = None, public_dir: Optional[Path] = None) -> Starlette:
    """Load catalogues, start with an empty queue and build the routes."""
    global _state, _coordinator, _catalogue

    _state = KaraokeState()
    _coordinator = QueueCoordinator(_state)
    _catalogue = Catalogue(data_dir).load()

    routes = [
        Route("/api/health", health),
        Route("/api/catalogue/jk", catalogue_jk),
        Route("/api/catalogue/jk-popular", catalogue_jk_popular),
        Route("/api/catalogue/kf-genres", catalogue_kf_genres),
        Route("/api/search", search),
        Route("/api/queue", get_queue, methods=["GET"]),
        Route("/api/queue", add_to_queue, methods=["POST"]),
        Route("/api/host/next", host_next, methods=["POST"]),
        Route("/api/host/done", host_done, methods=["POST"]),
        Route("/api/host/remove/{queue_id:int}", host_remove, methods=["POST"]),
        Route("/api/host/reorder", host_reorder, methods=["POST"]),
        Route("/api/host/move-up/{queue_id:int}", host_move_up, methods=["POST"]),
        Route("/api/host/move-down/{queue_id:int}", host_move_down, methods=["POST"]),
        WebSocketRoute("/ws", websocket_endpoint),
    ]

    # Guest/host pages, if present; must be last
    static_dir = Path(public_dir) if public_dir else PUBLIC_DIR
    if static_dir.is_dir():
        routes.append(Mount("/", app=StaticFiles(directory=str(static_dir), html=True), name="public"))
    else:
        logger.warning("No static pages at %s; serving API only", static_dir)

    return Starlette(routes=routes)
