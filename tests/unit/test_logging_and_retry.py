"""Tests for correlation-aware logging and retry strategies."""

import logging
import sys
from datetime import date, time

import pytest
from loguru import logger

from booking_engine.core.exceptions import (
    BranchDirectoryError,
    SlotConflictError,
    TransientStorageError,
)
from booking_engine.core.logger import (
    InterceptHandler,
    correlation_id_ctx,
    correlation_scope,
    setup_structured_logging,
)
from booking_engine.core.retry import get_directory_retry, get_storage_retry


class TestCorrelationScope:
    """Test cases for correlation_scope."""

    def test_generates_and_resets_id(self):
        """Test that an ID is bound only inside the block."""
        with correlation_scope() as corr_id:
            assert correlation_id_ctx.get() == corr_id
            assert len(corr_id) == 16
        assert correlation_id_ctx.get() is None

    def test_nested_scope_keeps_outer_id(self):
        """Test nesting without an explicit ID."""
        with correlation_scope("outer") as outer:
            with correlation_scope() as inner:
                assert inner == outer == "outer"

    def test_explicit_id_wins(self):
        """Test nesting with an explicit ID."""
        with correlation_scope("outer"):
            with correlation_scope("inner") as inner:
                assert inner == "inner"
            assert correlation_id_ctx.get() == "outer"


def test_setup_structured_logging_writes_files(tmp_path):
    """Test sinks and stdlib interception."""
    try:
        setup_structured_logging(level="INFO", json_format=True, logs_dir=tmp_path)
        with correlation_scope("abc123"):
            logger.info("engine ready")
            logging.getLogger("booking_engine.test").warning("from stdlib")
        logger.complete()

        assert (tmp_path / "booking_engine.jsonl").exists()
        content = (tmp_path / "booking_engine.jsonl").read_text(encoding="utf-8")
        assert "engine ready" in content
        assert "abc123" in content
        assert "from stdlib" in content
        assert any(isinstance(h, InterceptHandler) for h in logging.root.handlers)
    finally:
        logger.remove()
        logger.add(sys.stderr)
        logging.root.handlers.clear()


@pytest.mark.asyncio
class TestStorageRetry:
    """Test cases for get_storage_retry."""

    async def test_retries_transient_errors(self):
        """Test that transient failures are retried."""
        calls = []

        @get_storage_retry(attempts=3)
        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise TransientStorageError("serialization failure", sqlstate="40001")
            return "ok"

        assert await flaky() == "ok"
        assert len(calls) == 3

    async def test_gives_up_after_attempts(self):
        """Test that the last error is re-raised."""
        calls = []

        @get_storage_retry(attempts=2)
        async def always_fails():
            calls.append(1)
            raise TransientStorageError("deadlock")

        with pytest.raises(TransientStorageError):
            await always_fails()
        assert len(calls) == 2

    async def test_business_errors_are_not_retried(self):
        """Test that rejections surface immediately."""
        calls = []

        @get_storage_retry(attempts=3)
        async def rejected():
            calls.append(1)
            raise SlotConflictError("HQ", date(2025, 1, 5), time(8, 0))

        with pytest.raises(SlotConflictError):
            await rejected()
        assert len(calls) == 1


@pytest.mark.asyncio
class TestDirectoryRetry:
    """Test cases for get_directory_retry."""

    async def test_recoverable_error_is_retried(self):
        """Test retry on a 5xx-style error."""
        calls = []

        @get_directory_retry(attempts=2)
        async def lookup():
            calls.append(1)
            if len(calls) == 1:
                raise BranchDirectoryError("busy", status=503)
            return []

        assert await lookup() == []
        assert len(calls) == 2

    async def test_non_recoverable_error_is_not_retried(self):
        """Test no retry on a 4xx-style error."""
        calls = []

        @get_directory_retry(attempts=3)
        async def lookup():
            calls.append(1)
            raise BranchDirectoryError("bad request", status=400, recoverable=False)

        with pytest.raises(BranchDirectoryError):
            await lookup()
        assert len(calls) == 1
