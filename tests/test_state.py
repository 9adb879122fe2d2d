from streamhub.state import LiveStream, RoomRegistry, StreamStore


class TestRoomRegistry:

    def test_join_creates_room_lazily(self, registry):
        assert "r1" not in registry
        room, displaced = registry.join("r1", "a", as_broadcaster=True)
        assert "r1" in registry
        assert room.broadcaster == "a"
        assert displaced is None

    def test_viewer_join(self, registry):
        registry.join("r1", "a", True)
        room, _ = registry.join("r1", "b", False)
        assert room.viewers == {"b"}
        assert room.members() == ["a", "b"]

    def test_latest_broadcaster_wins(self, registry):
        registry.join("r1", "a", True)
        room, displaced = registry.join("r1", "c", True)
        assert room.broadcaster == "c"
        assert displaced == "a"

    def test_rejoin_as_same_broadcaster_displaces_nobody(self, registry):
        registry.join("r1", "a", True)
        _, displaced = registry.join("r1", "a", True)
        assert displaced is None

    def test_broadcaster_rejoining_as_viewer_keeps_pointer(self, registry):
        registry.join("r1", "a", True)
        room, _ = registry.join("r1", "a", False)
        assert room.broadcaster == "a"
        assert room.viewers == {"a"}
        assert room.members() == ["a"]

    def test_disconnect_of_dual_role_connection_empties_room(self, registry):
        registry.join("r1", "a", True)
        registry.join("r1", "a", False)
        roles = [role for _, role in registry.remove("a")]
        assert roles == ["broadcaster", "viewer"]
        assert "r1" not in registry

    def test_remove_broadcaster_keeps_room_with_viewers(self, registry):
        registry.join("r1", "a", True)
        registry.join("r1", "b", False)
        removed = registry.remove("a")
        assert [(room.room_id, role) for room, role in removed] == [("r1", "broadcaster")]
        assert "r1" in registry
        assert registry.get("r1").broadcaster is None

    def test_empty_room_is_deleted(self, registry):
        registry.join("r1", "a", True)
        registry.join("r1", "b", False)
        registry.remove("a")
        registry.remove("b")
        assert "r1" not in registry
        assert len(registry) == 0

    def test_connection_in_several_rooms(self, registry):
        registry.join("r1", "a", False)
        registry.join("r2", "a", False)
        registry.join("r2", "b", True)
        removed = registry.remove("a")
        assert sorted(room.room_id for room, _ in removed) == ["r1", "r2"]
        assert "r1" not in registry
        assert "r2" in registry

    def test_remove_unknown_connection(self, registry):
        registry.join("r1", "a", True)
        assert registry.remove("zzz") == []
        assert "r1" in registry

    def test_room_views(self, registry):
        registry.join("r1", "a", True)
        registry.join("r1", "c", False)
        registry.join("r1", "b", False)
        assert registry.active_rooms() == [
            {"roomId": "r1", "hasBroadcaster": True, "viewerCount": 2}
        ]
        assert registry.room_info("r1")["viewers"] == ["b", "c"]
        assert registry.room_info("missing") is None

    def test_get_ignores_non_string_ids(self, registry):
        registry.join("r1", "a", True)
        assert registry.get(["r1"]) is None


class TestStreamStore:

    def _stream(self, stream_id, user_id="u1", status="created", started_at=None):
        return LiveStream(
            id=stream_id, user_id=user_id, title=stream_id, room_id=f"room-{stream_id}",
            status=status, started_at=started_at,
        )

    def test_to_dict_derives_urls(self):
        data = self._stream("s1").to_dict()
        assert data["stream_url"] == "webrtc://room-s1"
        assert data["stream_key"] == "room-s1"
        assert data["type"] == "webrtc"
        assert data["status"] == "created"

    def test_query_filters(self):
        store = StreamStore()
        store.add(self._stream("s1", user_id="u1"))
        store.add(self._stream("s2", user_id="u2", status="live"))
        assert [s.id for s in store.query(user_id="u1")] == ["s1"]
        assert [s.id for s in store.query(status="live")] == ["s2"]
        assert len(store.query()) == 2

    def test_active_orders_by_start(self):
        store = StreamStore()
        store.add(self._stream("early", status="live", started_at="2026-01-01T10:00:00.000Z"))
        store.add(self._stream("late", status="live", started_at="2026-01-01T11:00:00.000Z"))
        store.add(self._stream("idle"))
        assert [s.id for s in store.active()] == ["late", "early"]

    def test_delete(self):
        store = StreamStore()
        store.add(self._stream("s1"))
        assert store.delete("s1") is True
        assert store.delete("s1") is False
        assert store.get("s1") is None
