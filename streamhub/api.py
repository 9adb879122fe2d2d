"""
HTTP and WebSocket handlers for StreamHub live
Signaling socket + room views + live-stream records
"""
import functools
import hashlib
import json
import logging
import math

from aiohttp import web

from .auth import AuthError, authenticated_user, mint_access_token, verify_access_token
from .state import LiveStream, utc_timestamp
from .utils import generate_display_name, generate_room_id, generate_stream_id, generate_user_id

logger = logging.getLogger("streamhub")

STREAM_STATUSES = ("created", "live", "ended")


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"ok": False, "error": message}, status=status)


async def _json_body(request: web.Request) -> dict:
    """Request body as a dict; an empty body is an empty dict"""
    if not request.can_read_body:
        return {}
    try:
        data = await request.json()
    except ValueError:
        raise web.HTTPBadRequest(
            text=json.dumps({"ok": False, "error": "invalid JSON body"}),
            content_type="application/json",
        )
    if not isinstance(data, dict):
        raise web.HTTPBadRequest(
            text=json.dumps({"ok": False, "error": "JSON body must be an object"}),
            content_type="application/json",
        )
    return data


def login_required(handler):
    """Verify the bearer token and expose its claims as request["user"]"""
    @functools.wraps(handler)
    async def wrapper(request: web.Request) -> web.StreamResponse:
        try:
            request["user"] = authenticated_user(request)
        except AuthError as e:
            return _error(str(e), 401)
        return await handler(request)
    return wrapper

# ============================================================
# SIGNALING WEBSOCKET
# ============================================================

async def ws_signal(request: web.Request) -> web.WebSocketResponse:
    """WebSocket endpoint carrying all signaling events for one client"""
    relay = request.app["relay"]
    ws = web.WebSocketResponse(heartbeat=request.app["settings"].ws_heartbeat)
    await ws.prepare(request)

    conn_id = relay.connect(ws)
    await relay.send(conn_id, "connected", {"connectionId": conn_id})

    try:
        async for msg in ws:
            if msg.type == web.WSMsgType.TEXT:
                # Plain-text keepalive
                if msg.data == "ping":
                    await ws.send_str("pong")
                    continue
                await relay.handle_text(conn_id, msg.data)
            elif msg.type == web.WSMsgType.ERROR:
                logger.debug("WebSocket error on %s: %s", conn_id, ws.exception())
    finally:
        await relay.disconnect(conn_id)

    return ws

# ============================================================
# CONFIGURATION
# ============================================================

async def serve_config(request: web.Request) -> web.Response:
    """Return client configuration: signaling URL and ICE servers"""
    settings = request.app["settings"]
    protocol = "wss" if request.secure else "ws"
    return web.json_response({
        "ok": True,
        "signaling_url": f"{protocol}://{request.host}/ws/signal",
        "ice_servers": [{"urls": url} for url in settings.ice_servers],
    })

# ============================================================
# USER IDENTITY
# ============================================================

async def api_identify(request: web.Request) -> web.Response:
    """Create an anonymous identity, or refresh the token of an existing one"""
    settings = request.app["settings"]
    data = await _json_body(request)

    previous = data.get("token")
    if previous:
        try:
            claims = verify_access_token(previous, settings.jwt_secret)
        except AuthError as e:
            logger.debug("Not reusing identity: %s", e)
        else:
            user_id, name = claims["sub"], claims.get("name") or claims["sub"]
            logger.info("♻️ Reusing identity %s (%s)", user_id, name)
            return web.json_response({
                "ok": True,
                "user_id": user_id,
                "name": name,
                "token": mint_access_token(user_id, settings.jwt_secret, settings.token_ttl, name),
            })

    name = data.get("name") or generate_display_name()
    user_id = generate_user_id()
    logger.info("👤 New user: %s (%s)", name, user_id)
    return web.json_response({
        "ok": True,
        "user_id": user_id,
        "name": name,
        "token": mint_access_token(user_id, settings.jwt_secret, settings.token_ttl, name),
    })

# ============================================================
# SIGNALING ROOMS
# ============================================================

async def api_rooms(request: web.Request) -> web.Response:
    """List active signaling rooms with ETag caching"""
    items = request.app["relay"].active_rooms()

    content = json.dumps(items, sort_keys=True)
    etag = hashlib.md5(content.encode()).hexdigest()

    if request.headers.get("If-None-Match") == etag:
        return web.Response(status=304)

    response = web.json_response({"ok": True, "rooms": items})
    response.headers["ETag"] = etag
    response.headers["Cache-Control"] = "max-age=5"
    return response


async def api_room_info(request: web.Request) -> web.Response:
    room_id = request.match_info["room_id"]
    info = request.app["relay"].room_info(room_id)
    if info is None:
        return _error("unknown room", 404)
    return web.json_response({"ok": True, "room": info})

# ============================================================
# LIVE-STREAM RECORDS
# ============================================================

def _owned_stream(request: web.Request):
    """Look up the stream in the path and check the caller owns it"""
    stream = request.app["streams"].get(request.match_info["stream_id"])
    if stream is None:
        return None, _error("live stream not found", 404)
    if stream.user_id != request["user"]["sub"]:
        return None, _error("you can only manage your own streams", 403)
    return stream, None


@login_required
async def api_stream_create(request: web.Request) -> web.Response:
    data = await _json_body(request)
    title = data.get("title")
    if not title:
        return _error("title is required", 400)
    if not isinstance(title, str):
        return _error("title must be a string", 400)
    description = data.get("description")
    if description is not None and not isinstance(description, str):
        return _error("description must be a string", 400)
    is_private = data.get("is_private", False)
    if not isinstance(is_private, bool):
        return _error("is_private must be a boolean", 400)

    stream = request.app["streams"].add(LiveStream(
        id=generate_stream_id(),
        user_id=request["user"]["sub"],
        title=title,
        description=description,
        is_private=is_private,
        room_id=generate_room_id(),
    ))
    logger.info("🎪 Live stream created: %s by %s (room %s)", title, stream.user_id, stream.room_id)
    return web.json_response({"ok": True, "stream": stream.to_dict()}, status=201)


async def api_stream_list(request: web.Request) -> web.Response:
    """Paginated list of live-stream records, newest first"""
    try:
        page = int(request.query.get("page", 1))
        limit = int(request.query.get("limit", 10))
    except ValueError:
        return _error("page and limit must be integers", 400)
    if page < 1 or limit < 1:
        return _error("page and limit must be positive", 400)

    status = request.query.get("status", "all")
    if status != "all" and status not in STREAM_STATUSES:
        return _error(f"unknown status: {status}", 400)

    items = request.app["streams"].query(status=None if status == "all" else status)
    total = len(items)
    start = (page - 1) * limit
    return web.json_response({
        "ok": True,
        "streams": [s.to_dict() for s in items[start:start + limit]],
        "pagination": {
            "current_page": page,
            "total_pages": math.ceil(total / limit),
            "total_streams": total,
            "has_next": page * limit < total,
            "has_prev": page > 1,
        },
    })


async def api_stream_active(request: web.Request) -> web.Response:
    items = request.app["streams"].active()
    return web.json_response({"ok": True, "streams": [s.to_dict() for s in items]})


@login_required
async def api_stream_mine(request: web.Request) -> web.Response:
    items = request.app["streams"].query(user_id=request["user"]["sub"])
    return web.json_response({"ok": True, "streams": [s.to_dict() for s in items]})


async def api_stream_get(request: web.Request) -> web.Response:
    stream = request.app["streams"].get(request.match_info["stream_id"])
    if stream is None:
        return _error("live stream not found", 404)
    return web.json_response({"ok": True, "stream": stream.to_dict()})


@login_required
async def api_stream_start(request: web.Request) -> web.Response:
    stream, error = _owned_stream(request)
    if error is not None:
        return error

    stream.status = "live"
    stream.started_at = utc_timestamp()
    logger.info("🎬 Live stream %s started (room %s)", stream.id, stream.room_id)
    return web.json_response({
        "ok": True,
        "room_id": stream.room_id,
        "stream_id": stream.id,
        "status": stream.status,
    })


@login_required
async def api_stream_stop(request: web.Request) -> web.Response:
    stream, error = _owned_stream(request)
    if error is not None:
        return error

    stream.status = "ended"
    stream.ended_at = utc_timestamp()
    logger.info("🛑 Live stream %s stopped", stream.id)
    return web.json_response({"ok": True, "stream": stream.to_dict()})


@login_required
async def api_stream_delete(request: web.Request) -> web.Response:
    stream, error = _owned_stream(request)
    if error is not None:
        return error

    request.app["streams"].delete(stream.id)
    logger.info("🗑️ Live stream %s deleted", stream.id)
    return web.json_response({"ok": True})
