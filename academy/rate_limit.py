"""
Rate limiting

slowapi limiter shared by all routers. Auth endpoints are keyed by client
IP, admin endpoints by the authenticated user.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded

from .config import settings

logger = logging.getLogger(__name__)

AUTH_RATE_LIMIT_MESSAGE = "Demasiadas solicitudes. Intenta de nuevo en un minuto."
INVITE_RATE_LIMIT_MESSAGE = "Demasiadas solicitudes. Por favor, espera un momento."


def client_ip(request: Request) -> str:
    """First hop of X-Forwarded-For, else the socket peer, without DNS lookups"""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if not request.client:
        return "unknown"
    return request.client.host


def user_key(request: Request) -> str:
    """Authenticated user id set by the bearer dependency, falling back to the IP"""
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"user:{user_id}"
    return client_ip(request)


limiter = Limiter(key_func=client_ip, enabled=settings.RATE_LIMIT_ENABLED)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(f"Rate limit exceeded for {request.url.path} from {client_ip(request)}")
    return JSONResponse(status_code=429, content={"detail": exc.detail}, headers={"Retry-After": "60"})
