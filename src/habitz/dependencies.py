"""Shared FastAPI dependencies."""

from collections.abc import AsyncGenerator

from fastapi import Header, HTTPException

from habitz.database import get_session as _get_session
from habitz.redis_client import get_redis_or_none

get_db = _get_session


async def get_redis_dep() -> AsyncGenerator[object | None, None]:
    """Yield the Redis client (None when Redis is not configured)."""
    yield get_redis_or_none()


async def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Caller identity, set by the upstream auth gateway in ``X-User-Id``."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()
