from __future__ import annotations

from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Generic, TypeVar

from libs.common.errors import DomainError, ErrorEnvelope, build_error_envelope

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class McpOutcome(Generic[T]):
    """성공 값이나 오류 봉투 중 하나만 담아요.

    예외 대신 ``error.error_code``로 분기하고 싶은 호출자를 위한 형태예요.
    """

    value: T | None = None
    error: ErrorEnvelope | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise ValueError(f"실패한 결과예요: {self.error.error_code} {self.error.message}")
        return self.value  # type: ignore[return-value]


async def capture(awaitable: Awaitable[T]) -> McpOutcome[T]:
    """도메인 오류만 결과로 바꿔요. 그 밖의 예외는 그대로 올라가요."""
    try:
        return McpOutcome(value=await awaitable)
    except DomainError as exc:
        return McpOutcome(error=build_error_envelope(exc))
