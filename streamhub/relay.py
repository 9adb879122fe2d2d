"""
WebRTC signaling relay
Forwards offers, answers and ICE candidates between peers and fans out
stream-control and chat events to room members. Media never passes through.
"""
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from .state import RoomRegistry, utc_timestamp
from .utils import generate_connection_id

logger = logging.getLogger("streamhub")

# (target connection id, event name, payload)
Delivery = Tuple[str, str, Optional[dict]]


class SignalingRelay:
    """
    Routes signaling events for connected sockets.

    Registry mutations for an event complete before any send is awaited,
    so no other event can observe a half-applied change.
    """

    def __init__(self, registry: Optional[RoomRegistry] = None):
        self.registry = registry if registry is not None else RoomRegistry()
        self.connections: Dict[str, Any] = {}
        self._handlers = {
            "join-room": self._on_join_room,
            "offer": self._on_offer,
            "answer": self._on_answer,
            "ice-candidate": self._on_ice_candidate,
            "request-stream": self._on_request_stream,
            "stream-started": self._on_stream_started,
            "stream-stopped": self._on_stream_stopped,
            "chat-message": self._on_chat_message,
        }

    # ============================================================
    # CONNECTIONS
    # ============================================================

    def connect(self, socket, conn_id: Optional[str] = None) -> str:
        """Register a socket exposing ``async send_json`` and return its id"""
        conn_id = conn_id or generate_connection_id()
        self.connections[conn_id] = socket
        logger.info("🔌 Signaling client connected: %s (total: %d)", conn_id, len(self.connections))
        return conn_id

    def is_connected(self, conn_id: str) -> bool:
        return conn_id in self.connections

    async def send(self, conn_id: str, event: str, data: Optional[dict] = None) -> bool:
        """Best-effort send; unknown targets are dropped silently"""
        socket = self.connections.get(conn_id) if isinstance(conn_id, str) else None
        if socket is None:
            logger.debug("Dropping %s for unknown target %s", event, conn_id)
            return False
        try:
            await socket.send_json({"event": event, "data": data})
        except (ConnectionError, RuntimeError) as e:
            logger.debug("Failed to send %s to %s: %s", event, conn_id, e)
            self.connections.pop(conn_id, None)
            return False
        return True

    async def _deliver(self, deliveries: List[Delivery]) -> None:
        for target, event, data in deliveries:
            await self.send(target, event, data)

    def _to_room(self, room_id: str, event: str, data: Optional[dict] = None) -> List[Delivery]:
        room = self.registry.get(room_id)
        if room is None:
            return []
        return [(member, event, data) for member in room.members()]

    # ============================================================
    # INBOUND FRAMES
    # ============================================================

    async def handle_text(self, conn_id: str, text: str) -> None:
        """Parse one ``{"event", "data"}`` frame and dispatch it"""
        try:
            frame = json.loads(text)
        except ValueError:
            logger.warning("Ignoring non-JSON frame from %s", conn_id)
            return
        if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
            logger.warning("Ignoring malformed frame from %s", conn_id)
            return
        await self.dispatch(conn_id, frame["event"], frame.get("data"))

    async def dispatch(self, conn_id: str, event: str, data: Any) -> None:
        handler = self._handlers.get(event)
        if handler is None:
            logger.debug("Ignoring unknown event %r from %s", event, conn_id)
            return
        if event == "join-room":
            await handler(conn_id, data)
            return
        if not isinstance(data, dict):
            logger.warning("Ignoring %s from %s: payload is not an object", event, conn_id)
            return
        await handler(conn_id, data)

    async def _on_join_room(self, conn_id: str, data: Any) -> None:
        if isinstance(data, (list, tuple)):
            room_id, user_id, is_broadcaster = (list(data) + [None, None, False])[:3]
        elif isinstance(data, dict):
            room_id = data.get("roomId")
            user_id = data.get("userId")
            is_broadcaster = data.get("isBroadcaster", False)
        else:
            logger.warning("Ignoring join-room from %s: bad arguments", conn_id)
            return
        if room_id is None:
            logger.warning("Ignoring join-room from %s: no room id", conn_id)
            return
        if not isinstance(room_id, str):
            logger.warning("Ignoring join-room from %s: room id must be a string", conn_id)
            return
        await self.join(room_id, conn_id, bool(is_broadcaster), user_id=user_id)

    async def _on_offer(self, conn_id: str, data: dict) -> None:
        await self.relay_offer(conn_id, data.get("roomId"), data.get("offer"), data.get("targetId"))

    async def _on_answer(self, conn_id: str, data: dict) -> None:
        # "from" names the peer that sent the offer, i.e. the answer's target
        target = data.get("from", data.get("targetId"))
        await self.relay_answer(conn_id, data.get("answer"), target)

    async def _on_ice_candidate(self, conn_id: str, data: dict) -> None:
        await self.relay_ice_candidate(conn_id, data.get("candidate"), data.get("targetId"))

    async def _on_request_stream(self, conn_id: str, data: dict) -> None:
        await self.request_stream(conn_id, data.get("roomId"))

    async def _on_stream_started(self, conn_id: str, data: dict) -> None:
        await self.announce_stream_started(data.get("roomId"))

    async def _on_stream_stopped(self, conn_id: str, data: dict) -> None:
        await self.announce_stream_stopped(data.get("roomId"))

    async def _on_chat_message(self, conn_id: str, data: dict) -> None:
        await self.chat_message(
            data.get("roomId"), data.get("message"), data.get("userId"), data.get("username")
        )

    # ============================================================
    # OPERATIONS
    # ============================================================

    async def join(self, room_id: str, conn_id: str, as_broadcaster: bool, user_id: Any = None) -> None:
        role = "broadcaster" if as_broadcaster else "viewer"
        logger.info("👥 User %s joining room %s as %s (%s)", user_id, room_id, role, conn_id)

        room, displaced = self.registry.join(room_id, conn_id, as_broadcaster)
        deliveries: List[Delivery] = [(conn_id, "room-joined", {"roomId": room_id, "role": role})]
        if displaced:
            logger.info("🔁 Broadcaster %s replaced by %s in room %s", displaced, conn_id, room_id)
            deliveries.append(
                (displaced, "broadcaster-replaced", {"roomId": room_id, "broadcasterId": conn_id})
            )
        if not as_broadcaster and room.broadcaster:
            deliveries.append((room.broadcaster, "viewer-joined", {"viewerId": conn_id}))

        await self._deliver(deliveries)

    async def relay_offer(self, sender: str, room_id: Any, offer: Any, target: Any) -> None:
        logger.debug("📤 Offer from %s to %s in room %s", sender, target, room_id)
        await self.send(target, "offer", {"offer": offer, "from": sender, "roomId": room_id})

    async def relay_answer(self, sender: str, answer: Any, target: Any) -> None:
        logger.debug("📥 Answer from %s to %s", sender, target)
        await self.send(target, "answer", {"answer": answer, "from": sender})

    async def relay_ice_candidate(self, sender: str, candidate: Any, target: Any) -> None:
        logger.debug("🧊 ICE candidate from %s to %s", sender, target)
        await self.send(target, "ice-candidate", {"candidate": candidate, "from": sender})

    async def request_stream(self, conn_id: str, room_id: Any) -> None:
        room = self.registry.get(room_id)
        if room is None or room.broadcaster is None:
            return
        await self.send(room.broadcaster, "viewer-request-stream", {"viewerId": conn_id})

    async def announce_stream_started(self, room_id: Any) -> None:
        logger.info("🎬 Stream started in room %s", room_id)
        await self._deliver(self._to_room(room_id, "broadcaster-started-stream"))

    async def announce_stream_stopped(self, room_id: Any) -> None:
        logger.info("⏹️ Stream stopped in room %s", room_id)
        await self._deliver(self._to_room(room_id, "broadcaster-stopped-stream"))

    async def chat_message(self, room_id: Any, message: Any, user_id: Any, username: Any) -> None:
        logger.debug("💬 Chat message in room %s from %s", room_id, username)
        payload = {
            "message": message,
            "userId": user_id,
            "username": username,
            "timestamp": utc_timestamp(),
        }
        await self._deliver(self._to_room(room_id, "chat-message", payload))

    async def disconnect(self, conn_id: str) -> None:
        """Forget a dropped connection and notify the rooms it was in"""
        self.connections.pop(conn_id, None)
        logger.info("🔌 Signaling client disconnected: %s (remaining: %d)", conn_id, len(self.connections))

        deliveries: List[Delivery] = []
        for room, role in self.registry.remove(conn_id):
            if role == "broadcaster":
                deliveries.extend((member, "broadcaster-left", None) for member in room.members())
            elif room.broadcaster:
                deliveries.append((room.broadcaster, "viewer-left", {"viewerId": conn_id}))

        await self._deliver(deliveries)

    # ============================================================
    # INTROSPECTION
    # ============================================================

    def active_rooms(self) -> List[dict]:
        return self.registry.active_rooms()

    def room_info(self, room_id: str) -> Optional[dict]:
        return self.registry.room_info(room_id)
