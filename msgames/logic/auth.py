"""
Bearer token authentication for the game API.

Tokens are HS256 JWTs signed with JWT_SECRET. Routes opt in with the
`authenticate` dependency; plain async handlers can use the `require_auth`
decorator instead, which reads the Authorization header from the handler's
`request` argument. Both leave the verified claims on `request.state.user`.
"""
import functools
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Request

from msgames.config import Settings, get_settings
from msgames.utils.errors import AuthError

logger = logging.getLogger(__name__)


def _secret(settings: Settings) -> str:
    if not settings.jwt_secret:
        raise AuthError("Token verification is not configured", status_code=500)
    return settings.jwt_secret


def create_token(subject: str, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_expiration_minutes),
    }
    return jwt.encode(payload, _secret(settings), algorithm=settings.jwt_algorithm)


def verify_token(token: str, settings: Optional[Settings] = None) -> Dict[str, Any]:
    """
    Verify a token and return its claims.

    Raises:
        AuthError: if the token is expired, malformed, wrongly signed or has no subject
    """
    settings = settings or get_settings()
    try:
        claims = jwt.decode(token, _secret(settings), algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise AuthError("Token has expired")
    except jwt.InvalidTokenError:
        raise AuthError("Invalid token")
    if not claims.get("sub"):
        raise AuthError("Token has no subject")
    return claims


def get_bearer_token(request: Request) -> str:
    header = request.headers.get("Authorization")
    if not header:
        raise AuthError("Missing authorization header")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Invalid authorization header")
    return token.strip()


async def authenticate(request: Request) -> Dict[str, Any]:
    """Route dependency: verify the bearer token before the body is validated."""
    claims = verify_token(get_bearer_token(request))
    request.state.user = claims
    return claims


def _find_request(args, kwargs) -> Optional[Request]:
    request = kwargs.get("request")
    if isinstance(request, Request):
        return request
    for value in list(args) + list(kwargs.values()):
        if isinstance(value, Request):
            return value
    return None


def require_auth(func):
    """Reject calls to an async route handler that lack a valid bearer token."""
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        request = _find_request(args, kwargs)
        if request is None:
            raise RuntimeError(f"{func.__name__} needs a 'request: Request' argument to use require_auth")
        await authenticate(request)
        return await func(*args, **kwargs)
    return wrapper
