"""Tests for productcache.clients.resilience: exceptions, retry, circuit breaker, envelope validation."""

import asyncio
from unittest.mock import MagicMock, patch

import pytest

from productcache.clients.resilience import (
    TRANSIENT_STATUS_CODES,
    AuthError,
    BackingStoreError,
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
    PermanentBackingStoreError,
    SchemaChangeError,
    TransientBackingStoreError,
    backing_store_breaker,
    classify_response,
    log_retry_attempt,
    resilient_request,
    validate_envelope,
    validate_product_schema,
)

# ── Exception Hierarchy ──────────────────────────────────────────────────────


class TestExceptionHierarchy:
    def test_transient_is_backing_store_error(self):
        assert issubclass(TransientBackingStoreError, BackingStoreError)

    def test_permanent_is_backing_store_error(self):
        assert issubclass(PermanentBackingStoreError, BackingStoreError)

    def test_auth_is_permanent(self):
        assert issubclass(AuthError, PermanentBackingStoreError)

    def test_schema_change_is_permanent(self):
        assert issubclass(SchemaChangeError, PermanentBackingStoreError)

    def test_circuit_open_is_backing_store_error(self):
        assert issubclass(CircuitOpenError, BackingStoreError)
        assert not issubclass(CircuitOpenError, TransientBackingStoreError)


# ── classify_response ────────────────────────────────────────────────────────


class TestClassifyResponse:
    def test_200_no_error(self):
        resp = MagicMock(status_code=200)
        classify_response(resp)  # Should not raise

    def test_301_no_error(self):
        resp = MagicMock(status_code=301)
        classify_response(resp)

    def test_401_raises_auth_error(self):
        resp = MagicMock(status_code=401)
        with pytest.raises(AuthError, match="401"):
            classify_response(resp)

    def test_409_raises_permanent(self):
        resp = MagicMock(status_code=409)
        with pytest.raises(PermanentBackingStoreError, match="409"):
            classify_response(resp)

    def test_message_from_envelope_included(self):
        resp = MagicMock(status_code=400)
        resp.json.return_value = {"code": 400, "message": "price must be positive"}
        with pytest.raises(PermanentBackingStoreError, match="price must be positive"):
            classify_response(resp)

    def test_unreadable_body_still_classified(self):
        resp = MagicMock(status_code=403)
        resp.json.side_effect = ValueError("not json")
        with pytest.raises(PermanentBackingStoreError, match="403"):
            classify_response(resp)

    @pytest.mark.parametrize("code", sorted(TRANSIENT_STATUS_CODES))
    def test_transient_codes(self, code):
        resp = MagicMock(status_code=code)
        with pytest.raises(TransientBackingStoreError):
            classify_response(resp)

    def test_unknown_5xx_is_transient(self):
        resp = MagicMock(status_code=599)
        with pytest.raises(TransientBackingStoreError):
            classify_response(resp)

    def test_no_status_code_attribute(self):
        classify_response(object())  # No status_code → no-op

    def test_none_status_code(self):
        resp = MagicMock(status_code=None)
        classify_response(resp)


# ── log_retry_attempt ────────────────────────────────────────────────────────


class TestLogRetryAttempt:
    def test_logs_retry_info(self):
        state = MagicMock()
        state.attempt_number = 2
        state.outcome.exception.return_value = TransientBackingStoreError("boom")
        with patch("productcache.clients.resilience.logger") as mock_logger:
            log_retry_attempt(state)
            mock_logger.warning.assert_called_once()
            assert "2" in str(mock_logger.warning.call_args)

    def test_logs_with_no_outcome(self):
        state = MagicMock()
        state.attempt_number = 1
        state.outcome = None
        with patch("productcache.clients.resilience.logger") as mock_logger:
            log_retry_attempt(state)
            mock_logger.warning.assert_called_once()


# ── resilient_request ────────────────────────────────────────────────────────


class TestResilientRequest:
    async def test_successful_call_passes_through(self):
        @resilient_request
        async def success():
            return "ok"

        assert await success() == "ok"

    async def test_permanent_error_not_retried(self):
        call_count = 0

        @resilient_request
        async def fail_permanent():
            nonlocal call_count
            call_count += 1
            raise PermanentBackingStoreError("bad")

        with pytest.raises(PermanentBackingStoreError):
            await fail_permanent()
        assert call_count == 1


# ── CircuitBreaker ───────────────────────────────────────────────────────────


class TestCircuitBreaker:
    async def test_closed_passes_through(self):
        cb = CircuitBreaker("test", fail_max=3, reset_timeout=1.0)

        async def success():
            return "ok"

        result = await cb.call_async(success)
        assert result == "ok"
        assert cb.state == CircuitState.CLOSED

    async def test_passes_arguments(self):
        cb = CircuitBreaker("test")

        async def echo(a, *, b):
            return (a, b)

        assert await cb.call_async(echo, 1, b=2) == (1, 2)

    async def test_opens_after_fail_max(self):
        cb = CircuitBreaker("test", fail_max=2, reset_timeout=60.0)

        async def fail():
            raise ValueError("boom")

        for _ in range(2):
            with pytest.raises(ValueError):
                await cb.call_async(fail)

        assert cb.state == CircuitState.OPEN

    async def test_open_raises_without_calling(self):
        cb = CircuitBreaker("test", fail_max=1, reset_timeout=60.0)
        calls = 0

        async def fail():
            nonlocal calls
            calls += 1
            raise ValueError("boom")

        with pytest.raises(ValueError):
            await cb.call_async(fail)

        assert cb.state == CircuitState.OPEN
        with pytest.raises(CircuitOpenError, match="test"):
            await cb.call_async(fail)
        assert calls == 1

    async def test_half_open_after_timeout(self):
        cb = CircuitBreaker("test", fail_max=1, reset_timeout=0.01)

        async def fail():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            await cb.call_async(fail)

        assert cb.state == CircuitState.OPEN

        # Wait for reset timeout
        await asyncio.sleep(0.02)

        assert cb.state == CircuitState.HALF_OPEN

    async def test_half_open_success_resets_to_closed(self):
        cb = CircuitBreaker("test", fail_max=1, reset_timeout=0.01)

        async def fail():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            await cb.call_async(fail)

        await asyncio.sleep(0.02)
        assert cb.state == CircuitState.HALF_OPEN

        async def success():
            return "recovered"

        result = await cb.call_async(success)
        assert result == "recovered"
        assert cb.state == CircuitState.CLOSED

    async def test_half_open_failure_returns_to_open(self):
        cb = CircuitBreaker("test", fail_max=2, reset_timeout=0.01)

        async def fail():
            raise ValueError("boom")

        for _ in range(2):
            with pytest.raises(ValueError):
                await cb.call_async(fail)

        assert cb._state == CircuitState.OPEN
        await asyncio.sleep(0.02)
        assert cb.state == CircuitState.HALF_OPEN

        # Below fail_max, so only the half-open branch can re-open it
        cb._fail_count = 0

        with pytest.raises(ValueError):
            await cb.call_async(fail)

        assert cb._state == CircuitState.OPEN

    async def test_success_resets_fail_count(self):
        cb = CircuitBreaker("test", fail_max=3, reset_timeout=60.0)

        async def fail():
            raise ValueError("boom")

        async def success():
            return "ok"

        for _ in range(2):
            with pytest.raises(ValueError):
                await cb.call_async(fail)

        assert cb._fail_count == 2

        await cb.call_async(success)
        assert cb._fail_count == 0
        assert cb.state == CircuitState.CLOSED

    async def test_reset_closes_open_circuit(self):
        cb = CircuitBreaker("test", fail_max=1, reset_timeout=60.0)

        async def fail():
            raise ValueError("boom")

        with pytest.raises(ValueError):
            await cb.call_async(fail)
        cb.reset()
        assert cb.state == CircuitState.CLOSED
        assert cb._fail_count == 0


class TestPreconfiguredBreaker:
    def test_backing_store_breaker_exists(self):
        assert backing_store_breaker.name == "backing_store"
        assert backing_store_breaker.fail_max == 5
        assert backing_store_breaker.reset_timeout == 60.0


# ── Envelope Validation ──────────────────────────────────────────────────────


class TestEnvelopeValidation:
    def test_valid_envelope_passes(self):
        payload = {"code": 200, "message": "ok", "data": []}
        assert validate_envelope(payload) is payload

    def test_missing_code_raises(self):
        with pytest.raises(SchemaChangeError, match="code"):
            validate_envelope({"data": []})

    def test_non_dict_raises(self):
        with pytest.raises(SchemaChangeError, match="Expected dict"):
            validate_envelope([1, 2])

    def test_valid_product_passes(self):
        validate_product_schema({"id": 1, "name": "Lamp"})

    def test_product_missing_name_raises(self):
        with pytest.raises(SchemaChangeError, match="name"):
            validate_product_schema({"id": 1})

    def test_product_non_dict_raises(self):
        with pytest.raises(SchemaChangeError, match="Expected dict"):
            validate_product_schema("p1")
