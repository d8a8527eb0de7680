from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from libs.common.errors import is_retryable

T = TypeVar("T")


async def retry_async(
    func: Callable[[], Awaitable[T]],
    *,
    retries: int,
    base_delay_seconds: float,
    max_delay_seconds: float,
    retry_filter: Callable[[Exception], bool] = is_retryable,
) -> T:
    """MCP 클라이언트 바깥에서 재시도 정책을 얹을 때 써요.

    클라이언트 코어는 스스로 재시도하지 않아요. 재시도할지는 호출자가 정해요.
    """
    attempt = 0
    while True:
        try:
            return await func()
        except Exception as exc:
            if attempt >= retries or not retry_filter(exc):
                raise

            delay = min(base_delay_seconds * (2**attempt), max_delay_seconds)
            jitter = random.uniform(0, delay * 0.2)
            await asyncio.sleep(delay + jitter)
            attempt += 1
