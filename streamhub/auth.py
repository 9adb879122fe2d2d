"""
JWT access tokens for the live-stream API
"""
import time
from typing import Optional

import jwt
from aiohttp import web


class AuthError(Exception):
    """Missing, malformed, expired or badly signed token"""


def mint_access_token(identity: str, secret: str, ttl: int, name: Optional[str] = None) -> str:
    """
    Mint an access token for a user

    Args:
        identity: Unique user identifier, stored as ``sub``
        secret: HS256 signing secret
        ttl: Lifetime in seconds
        name: Display name (optional)

    Returns:
        JWT token string
    """
    now = int(time.time())
    payload = {
        "sub": identity,
        "name": name or identity,
        "iat": now,
        "exp": now + ttl,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def verify_access_token(token: str, secret: str) -> dict:
    try:
        claims = jwt.decode(token, secret, algorithms=["HS256"])
    except jwt.ExpiredSignatureError as e:
        raise AuthError("token expired") from e
    except jwt.InvalidTokenError as e:
        raise AuthError("invalid token") from e

    if not claims.get("sub"):
        raise AuthError("token has no subject")
    return claims


def authenticated_user(request: web.Request) -> dict:
    """Return the verified claims for the request's bearer token"""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise AuthError("access token required")
    return verify_access_token(token.strip(), request.app["settings"].jwt_secret)
