"""Error hierarchy and bounded store call tests."""

import asyncio

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from habitz import resilience
from habitz.config import Settings
from habitz.errors import (
    GENERIC_USER_MESSAGE,
    ConflictError,
    DuplicateCheckInError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)
from habitz.resilience import bounded_store_call


class TestErrors:
    """Status codes and user-facing messages."""

    def test_duplicate_check_in_message(self):
        err = DuplicateCheckInError("u1", "activity")
        assert err.status_code == 409
        assert err.to_dict() == {
            "detail": "You have already checked in today.",
            "error": "DuplicateCheckInError",
        }
        assert err.context == {"user_id": "u1", "type": "activity"}

    @pytest.mark.parametrize(
        ("error_cls", "status"),
        [(ValidationError, 400), (NotFoundError, 404), (ConflictError, 409)],
    )
    def test_other_errors_use_generic_message(self, error_cls, status):
        err = error_cls("internal detail")
        assert err.status_code == status
        assert err.user_message == GENERIC_USER_MESSAGE
        assert err.message == "internal detail"
        assert err.retryable is False

    def test_external_service_error_is_retryable(self):
        cause = RuntimeError("down")
        err = ExternalServiceError("store down", operation="op", cause=cause)
        assert err.status_code == 503
        assert err.retryable is True
        assert err.cause is cause
        assert err.context == {"operation": "op"}


@pytest.fixture
def short_timeout(monkeypatch):
    monkeypatch.setattr(resilience, "get_settings", lambda: Settings(store_timeout_seconds=0.05))


class TestBoundedStoreCall:
    """Timeouts and connectivity failures become ExternalServiceError."""

    @pytest.mark.asyncio
    async def test_passes_result_through(self, short_timeout):
        @bounded_store_call("fast")
        async def fast(value):
            return value * 2

        assert await fast(21) == 42

    @pytest.mark.asyncio
    async def test_timeout(self, short_timeout):
        @bounded_store_call("slow")
        async def slow():
            await asyncio.sleep(1)

        with pytest.raises(ExternalServiceError) as exc_info:
            await slow()
        assert exc_info.value.operation == "slow"
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_operational_error(self, short_timeout):
        @bounded_store_call("broken")
        async def broken():
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        with pytest.raises(ExternalServiceError) as exc_info:
            await broken()
        assert isinstance(exc_info.value.cause, OperationalError)

    @pytest.mark.asyncio
    async def test_integrity_error_passes_through(self, short_timeout):
        @bounded_store_call("dupe")
        async def dupe():
            raise IntegrityError("INSERT", {}, Exception("unique"))

        with pytest.raises(IntegrityError):
            await dupe()

    @pytest.mark.asyncio
    async def test_domain_errors_pass_through(self, short_timeout):
        @bounded_store_call("missing")
        async def missing():
            raise NotFoundError("nope")

        with pytest.raises(NotFoundError):
            await missing()
