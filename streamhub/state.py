"""
In-memory state for signaling rooms and live-stream records
Owned by the application and injected, never module-global
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional, Set, Tuple


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class Room:
    room_id: str
    broadcaster: Optional[str] = None
    viewers: Set[str] = field(default_factory=set)

    def members(self) -> List[str]:
        """Broadcaster first, then viewers"""
        out = [self.broadcaster] if self.broadcaster else []
        out.extend(v for v in self.viewers if v != self.broadcaster)
        return out

    def is_empty(self) -> bool:
        return self.broadcaster is None and not self.viewers

    def summary(self, with_viewers: bool = False) -> dict:
        data = {
            "roomId": self.room_id,
            "hasBroadcaster": self.broadcaster is not None,
            "viewerCount": len(self.viewers),
        }
        if with_viewers:
            data["viewers"] = sorted(self.viewers)
        return data


class RoomRegistry:
    """
    Rooms keyed by id. A room is kept only while it has a broadcaster
    or at least one viewer.
    """

    def __init__(self):
        self._rooms: Dict[str, Room] = {}

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def __iter__(self) -> Iterator[Room]:
        return iter(list(self._rooms.values()))

    def get(self, room_id: str) -> Optional[Room]:
        if not isinstance(room_id, str):
            return None
        return self._rooms.get(room_id)

    def join(self, room_id: str, conn_id: str, as_broadcaster: bool) -> Tuple[Room, Optional[str]]:
        """
        Add a connection to a room, creating the room if needed.

        Returns the room and the id of a broadcaster displaced by this
        join, if any.
        """
        room = self._rooms.get(room_id)
        if room is None:
            room = self._rooms[room_id] = Room(room_id)

        displaced = None
        if as_broadcaster:
            if room.broadcaster not in (None, conn_id):
                displaced = room.broadcaster
            room.viewers.discard(conn_id)
            room.broadcaster = conn_id
        else:
            # The broadcaster pointer survives a viewer join by the same connection
            room.viewers.add(conn_id)
        return room, displaced

    def remove(self, conn_id: str) -> List[Tuple[Room, str]]:
        """
        Drop a connection from every room it belongs to.

        Returns (room, role) pairs for each removal. Rooms left empty are
        deleted before returning.
        """
        removed = []
        for room_id, room in list(self._rooms.items()):
            if room.broadcaster == conn_id:
                room.broadcaster = None
                removed.append((room, "broadcaster"))
            if conn_id in room.viewers:
                room.viewers.discard(conn_id)
                removed.append((room, "viewer"))
            if room.is_empty():
                del self._rooms[room_id]
        return removed

    def active_rooms(self) -> List[dict]:
        return [room.summary() for room in self._rooms.values()]

    def room_info(self, room_id: str) -> Optional[dict]:
        room = self._rooms.get(room_id)
        if room is None:
            return None
        return room.summary(with_viewers=True)


@dataclass
class LiveStream:
    id: str
    user_id: str
    title: str
    room_id: str
    description: Optional[str] = None
    is_private: bool = False
    status: str = "created"
    created_at: str = field(default_factory=utc_timestamp)
    started_at: Optional[str] = None
    ended_at: Optional[str] = None

    @property
    def stream_url(self) -> str:
        return f"webrtc://{self.room_id}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "description": self.description,
            "is_private": self.is_private,
            "room_id": self.room_id,
            "stream_key": self.room_id,
            "stream_url": self.stream_url,
            "type": "webrtc",
            "status": self.status,
            "created_at": self.created_at,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
        }


class StreamStore:
    """Live-stream metadata records, newest first on listing"""

    def __init__(self):
        self._streams: Dict[str, LiveStream] = {}

    def __len__(self) -> int:
        return len(self._streams)

    def add(self, stream: LiveStream) -> LiveStream:
        self._streams[stream.id] = stream
        return stream

    def get(self, stream_id: str) -> Optional[LiveStream]:
        return self._streams.get(stream_id)

    def delete(self, stream_id: str) -> bool:
        return self._streams.pop(stream_id, None) is not None

    def query(self, status: Optional[str] = None, user_id: Optional[str] = None) -> List[LiveStream]:
        items = [
            s for s in reversed(list(self._streams.values()))
            if (status is None or s.status == status)
            and (user_id is None or s.user_id == user_id)
        ]
        items.sort(key=lambda s: s.created_at, reverse=True)
        return items

    def active(self) -> List[LiveStream]:
        items = self.query(status="live")
        items.sort(key=lambda s: s.started_at or "", reverse=True)
        return items
