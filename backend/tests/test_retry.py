"""Tests for the bounded retry helper."""

import pytest

from newsroom.utils.retry import with_retry


class TestWithRetry:
    async def test_returns_once_a_retry_succeeds(self) -> None:
        calls = 0

        async def flaky() -> str:
            nonlocal calls
            calls += 1
            if calls < 3:
                raise ConnectionError("connection reset")
            return "ok"

        assert await with_retry(flaky, attempts=3, delay=0) == "ok"
        assert calls == 3

    async def test_reraises_last_error_when_attempts_run_out(self) -> None:
        calls = 0

        async def down() -> None:
            nonlocal calls
            calls += 1
            raise ConnectionError(f"attempt {calls}")

        with pytest.raises(ConnectionError, match="attempt 2"):
            await with_retry(down, attempts=2, delay=0, backoff=1)
        assert calls == 2

    async def test_other_errors_are_not_retried(self) -> None:
        calls = 0

        async def broken() -> None:
            nonlocal calls
            calls += 1
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            await with_retry(broken, attempts=5, delay=0, retry_on=ConnectionError)
        assert calls == 1
