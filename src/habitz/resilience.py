"""Bounded store calls.

Every store operation runs under ``asyncio.wait_for`` so nothing blocks
indefinitely. Timeouts and driver connectivity failures surface as a
retryable ``ExternalServiceError``; integrity violations pass through so the
services can translate them into domain errors.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, TypeVar

from sqlalchemy.exc import InterfaceError, OperationalError

from habitz.config import get_settings
from habitz.errors import ExternalServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def bounded_store_call(
    operation: str,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator: bound an async store operation by ``store_timeout_seconds``.

    Usage:
        @bounded_store_call("record_check_in")
        async def record_check_in(db, ...):
            ...
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            timeout = get_settings().store_timeout_seconds
            try:
                return await asyncio.wait_for(func(*args, **kwargs), timeout=timeout)
            except (asyncio.TimeoutError, TimeoutError) as exc:
                logger.warning("%s timed out after %.1fs", operation, timeout)
                raise ExternalServiceError(
                    f"{operation} timed out after {timeout}s",
                    operation=operation,
                    cause=exc,
                ) from exc
            except (OperationalError, InterfaceError) as exc:
                logger.warning("%s failed: store unavailable", operation, exc_info=True)
                raise ExternalServiceError(
                    f"{operation} failed: {exc.__class__.__name__}",
                    operation=operation,
                    cause=exc,
                ) from exc

        return wrapper

    return decorator
