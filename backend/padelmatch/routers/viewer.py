import os
from datetime import datetime, timezone
from typing import Optional

from fastapi import Header, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded

from ..config import SCORE_SUBMISSION_RATE_LIMIT
from ..exceptions import http_problem


def _rate_limits_disabled() -> bool:
    return (os.getenv("DISABLE_RATE_LIMITS") or "").lower() == "true"


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        parts = [ip.strip() for ip in forwarded.split(",") if ip.strip()]
        if parts:
            return parts[-1]
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    if request.client and request.client.host:
        return request.client.host
    return "anonymous"


limiter = Limiter(key_func=_client_ip)


def score_submission_rate_limit() -> str:
    if _rate_limits_disabled():
        return "1000/second"
    return SCORE_SUBMISSION_RATE_LIMIT


async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    detail = exc.detail if isinstance(exc.detail, str) else ""
    if detail:
        message = f"rate limit exceeded: {detail}"
    else:
        message = "rate limit exceeded: please wait before submitting another request."
    return JSONResponse(
        status_code=429,
        content={
            "detail": message,
            "code": "rate_limit_exceeded",
        },
    )


def get_viewer_id(
    player_id: Optional[str] = Header(default=None, alias="X-Player-Id"),
) -> Optional[str]:
    """Player looking at the match; anonymous when the header is missing."""

    if player_id is None:
        return None
    return player_id.strip() or None


def require_viewer(
    player_id: Optional[str] = Header(default=None, alias="X-Player-Id"),
) -> str:
    viewer = get_viewer_id(player_id)
    if viewer is None:
        raise http_problem(
            status_code=401,
            detail="X-Player-Id header required",
            code="viewer_required",
        )
    return viewer


def utcnow() -> datetime:
    """Clock dependency; overridden in tests."""

    return datetime.now(timezone.utc)
