"""
재시도 모듈
최대 시도 횟수와 백오프 함수로 제한된 재시도
"""

import time
from typing import Callable, Optional, Tuple, Type, TypeVar

from .logger import get_logger

T = TypeVar("T")


def linear_backoff(base: float = 2.0) -> Callable[[int], float]:
    """attempt * base 초 (지수 백오프 아님)"""
    def backoff(attempt: int) -> float:
        return attempt * base
    return backoff


def retry_call(func: Callable[[int], T],
               max_attempts: int,
               backoff: Callable[[int], float] = linear_backoff(),
               retryable: Tuple[Type[BaseException], ...] = (Exception,),
               should_retry: Optional[Callable[[BaseException], bool]] = None,
               sleep: Optional[Callable[[float], None]] = None,
               label: str = "operation") -> T:
    """func(attempt)를 성공할 때까지 최대 max_attempts번 호출

    attempt는 1부터 시작한다. attempt k가 실패하고 k < max_attempts이면
    backoff(k)초 대기 후 재시도한다. 마지막 시도의 예외는 감싸지 않고
    그대로 다시 발생시킨다.
    """
    logger = get_logger()
    sleep = sleep or time.sleep
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

    for attempt in range(1, max_attempts + 1):
        try:
            return func(attempt)
        except retryable as e:
            if should_retry is not None and not should_retry(e):
                raise
            logger.warning(f"{label} attempt {attempt} failed: {e}")
            if attempt == max_attempts:
                raise
            delay = backoff(attempt)
            logger.info(f"Retrying in {delay:g} seconds...")
            sleep(delay)

    raise AssertionError("unreachable")
