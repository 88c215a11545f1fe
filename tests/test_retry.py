"""
재시도 모듈 테스트
"""

import pytest
from unittest.mock import MagicMock

from ci_vpn_agent.retry import linear_backoff, retry_call


def test_success_first_attempt():
    sleep = MagicMock()
    assert retry_call(lambda attempt: attempt, max_attempts=3, sleep=sleep) == 1
    sleep.assert_not_called()


def test_retries_with_linear_backoff():
    """attempt k 실패 후 k*2초 대기"""
    sleep = MagicMock()
    calls = []

    def flaky(attempt):
        calls.append(attempt)
        if attempt < 3:
            raise RuntimeError(f"failure {attempt}")
        return "ok"

    assert retry_call(flaky, max_attempts=3, sleep=sleep) == "ok"
    assert calls == [1, 2, 3]
    assert [c.args[0] for c in sleep.call_args_list] == [2, 4]


def test_last_error_reraised_unchanged():
    sleep = MagicMock()
    errors = [ValueError("first"), ValueError("second")]

    def always_fail(attempt):
        raise errors[attempt - 1]

    with pytest.raises(ValueError) as exc_info:
        retry_call(always_fail, max_attempts=2, sleep=sleep)
    assert exc_info.value is errors[1]
    sleep.assert_called_once_with(2)


def test_non_retryable_error_not_retried():
    sleep = MagicMock()
    func = MagicMock(side_effect=KeyError("boom"))

    with pytest.raises(KeyError):
        retry_call(func, max_attempts=5, retryable=(ValueError,), sleep=sleep)
    assert func.call_count == 1
    sleep.assert_not_called()


def test_should_retry_predicate():
    func = MagicMock(side_effect=ValueError("fatal"))
    with pytest.raises(ValueError):
        retry_call(func, max_attempts=5, should_retry=lambda e: False, sleep=MagicMock())
    assert func.call_count == 1


def test_invalid_max_attempts():
    with pytest.raises(ValueError):
        retry_call(lambda attempt: None, max_attempts=0)


def test_linear_backoff():
    backoff = linear_backoff(2)
    assert [backoff(n) for n in (1, 2, 3)] == [2, 4, 6]
