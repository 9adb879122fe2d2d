"""
Environment-driven settings
"""
import os
from dataclasses import dataclass, field
from typing import List

DEFAULT_ICE_SERVERS = "stun:stun.l.google.com:19302"


def _split(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


@dataclass
class Settings:
    host: str = "0.0.0.0"
    port: int = 3000
    jwt_secret: str = "dev-secret"
    token_ttl: int = 60 * 60
    ice_servers: List[str] = field(default_factory=lambda: _split(DEFAULT_ICE_SERVERS))
    rate_limit: int = 100
    ws_heartbeat: float = 20.0

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            host=os.environ.get("SERVER_HOST", "0.0.0.0"),
            port=int(os.environ.get("PORT", 3000)),
            jwt_secret=os.environ.get("STREAMHUB_JWT_SECRET", "dev-secret"),
            token_ttl=int(os.environ.get("STREAMHUB_TOKEN_TTL", 60 * 60)),
            ice_servers=_split(os.environ.get("STREAMHUB_ICE_SERVERS", DEFAULT_ICE_SERVERS)),
            rate_limit=int(os.environ.get("STREAMHUB_RATE_LIMIT", 100)),
            ws_heartbeat=float(os.environ.get("STREAMHUB_WS_HEARTBEAT", 20)),
        )
