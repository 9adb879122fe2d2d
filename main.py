#!/usr/bin/env python3
"""
StreamHub live - Entry Point
WebRTC signaling relay + live-stream records + rate limiting
"""
import logging
import socket
import time
from typing import Optional

from aiohttp import web

from streamhub.api import (
    serve_config, api_identify, api_rooms, api_room_info,
    api_stream_create, api_stream_list, api_stream_active, api_stream_mine,
    api_stream_get, api_stream_start, api_stream_stop, api_stream_delete,
    ws_signal,
)
from streamhub.config import Settings
from streamhub.relay import SignalingRelay
from streamhub.state import RoomRegistry, StreamStore

logger = logging.getLogger("streamhub")


@web.middleware
async def rate_limit_middleware(request, handler):
    """Simple rate limiting: N requests per minute per IP"""
    limit = request.app["settings"].rate_limit
    store = request.app["rate_limits"]
    ip = request.remote
    now = time.time()

    # Forget IPs whose whole window has expired
    for stale in [k for k, times in store.items() if not times or now - times[-1] >= 60]:
        del store[stale]
    store[ip] = [t for t in store.get(ip, []) if now - t < 60]

    if len(store[ip]) >= limit:
        logger.warning("Rate limit exceeded for %s", ip)
        return web.json_response(
            {"ok": False, "error": "Rate limit exceeded"},
            status=429
        )

    store[ip].append(now)
    return await handler(request)


async def close_signaling_sockets(app: web.Application):
    """Close open signaling sockets so shutdown doesn't wait on heartbeats"""
    for ws in list(app["relay"].connections.values()):
        await ws.close(code=1001, message=b"Server shutdown")


def create_app(
    settings: Optional[Settings] = None,
    relay: Optional[SignalingRelay] = None,
    streams: Optional[StreamStore] = None,
) -> web.Application:
    """Create and configure the aiohttp application"""
    app = web.Application(middlewares=[rate_limit_middleware])
    app["settings"] = settings or Settings.from_env()
    app["relay"] = relay or SignalingRelay(RoomRegistry())
    app["streams"] = streams if streams is not None else StreamStore()
    app["rate_limits"] = {}

    # Signaling
    app.router.add_get("/ws/signal", ws_signal)

    # API routes
    app.router.add_get("/config", serve_config)
    app.router.add_post("/user/identify", api_identify)
    app.router.add_get("/rooms", api_rooms)
    app.router.add_get("/rooms/{room_id}", api_room_info)

    app.router.add_post("/streams", api_stream_create)
    app.router.add_get("/streams", api_stream_list)
    app.router.add_get("/streams/active", api_stream_active)
    app.router.add_get("/streams/mine", api_stream_mine)
    app.router.add_get("/streams/{stream_id}", api_stream_get)
    app.router.add_post("/streams/{stream_id}/start", api_stream_start)
    app.router.add_post("/streams/{stream_id}/stop", api_stream_stop)
    app.router.add_delete("/streams/{stream_id}", api_stream_delete)

    app.on_shutdown.append(close_signaling_sockets)

    logger.info("📡 StreamHub signaling server ready")
    return app


def get_local_ip():
    """Get local network IP address"""
    try:
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        s.connect(("8.8.8.8", 80))
        ip = s.getsockname()[0]
        s.close()
        return ip
    except OSError:
        return "localhost"


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    settings = Settings.from_env()
    app = create_app(settings)
    local_ip = get_local_ip()

    logger.info("🚀 Starting server on %s:%s", settings.host, settings.port)
    logger.info("💡 Signaling at: ws://%s:%s/ws/signal", local_ip, settings.port)

    web.run_app(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
