"""
Rate limiting utilities for API endpoints.
Uses slowapi to keep expensive AI calls and public counters from being hammered.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request

from atelier.utils.jwt_auth import TOKEN_COOKIE_NAME


def get_client_identifier(request: Request) -> str:
    """
    Get client identifier for rate limiting.
    Uses forwarded IP if behind proxy, otherwise remote address.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # First IP in chain is the original client
        return forwarded.split(",")[0].strip()

    return get_remote_address(request)


limiter = Limiter(
    key_func=get_client_identifier,
    default_limits=["1000/hour"],
    storage_uri="memory://"  # In-memory storage (for multi-process deployments, use Redis)
)


RATE_LIMITS = {
    "analyze": "30/hour",  # Each call makes three Gemini requests
    "migrate": "10/hour",
    "upload": "60/hour",
    "view": "120/minute",
    "click": "120/minute",
    "generate": "60/hour",
}


def is_authenticated_request(request: Request) -> bool:
    """True when the request carries a bearer header or the session cookie."""
    return bool(request.headers.get("Authorization") or request.cookies.get(TOKEN_COOKIE_NAME))
