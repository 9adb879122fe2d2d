"""
Utility functions for ID and name generation
"""
import random
import uuid


def generate_connection_id() -> str:
    """Generate an opaque connection ID for a signaling socket"""
    return "conn_" + uuid.uuid4().hex[:12]


def generate_user_id() -> str:
    """Generate a random user ID"""
    return "user_" + uuid.uuid4().hex[:9]


def generate_room_id() -> str:
    """Generate a room ID for a new live stream"""
    return str(uuid.uuid4())


def generate_stream_id() -> str:
    return uuid.uuid4().hex


def generate_display_name() -> str:
    """Generate a random display name for anonymous users"""
    adjectives = [
        "Live", "Bright", "Cosmic", "Neon", "Retro", "Stellar",
        "Vivid", "Sonic", "Rapid", "Lucky", "Quiet", "Bold"
    ]
    nouns = [
        "Streamer", "Viewer", "Camera", "Frame", "Pixel", "Signal",
        "Channel", "Studio", "Lens", "Wave", "Echo", "Cast"
    ]
    return random.choice(adjectives) + random.choice(nouns) + str(random.randint(1, 99))
