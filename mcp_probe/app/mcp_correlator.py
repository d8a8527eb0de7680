from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any

from libs.common.errors import (
    EmptyResultError,
    IdMismatchError,
    MalformedResponseError,
    ProtocolVersionError,
    ServerError,
)
from mcp_probe.app.mcp_protocol import JSONRPC_VERSION


@dataclass(slots=True, frozen=True)
class PendingRequest:
    id: int
    method: str
    sent_at: float


class RequestCorrelator:
    """요청 ID를 발급하고 응답을 ID로만 짝지어요. 도착 순서는 보지 않아요."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._last_id = 0
        self._pending: dict[int, PendingRequest] = {}

    async def next_id(self) -> int:
        async with self._lock:
            self._last_id += 1
            return self._last_id

    async def register(self, method: str) -> PendingRequest:
        request_id = await self.next_id()
        pending = PendingRequest(id=request_id, method=method, sent_at=time.monotonic())
        self._pending[request_id] = pending
        return pending

    def expire(self, request_id: int) -> PendingRequest | None:
        return self._pending.pop(request_id, None)

    @property
    def pending(self) -> dict[int, PendingRequest]:
        return dict(self._pending)

    def resolve(self, response: Any) -> tuple[PendingRequest, Any]:
        """응답의 id로 대기 중인 요청을 찾아 검증하고 result를 돌려줘요."""
        if not isinstance(response, dict):
            raise MalformedResponseError("JSON-RPC 응답이 객체가 아니에요.")
        response_id = response.get("id")
        pending = self._pending.get(response_id) if isinstance(response_id, int) else None
        if pending is None:
            raise IdMismatchError(expected_id=min(self._pending, default=0), actual_id=response_id)
        result = self.validate(response, pending.id)
        self._pending.pop(pending.id, None)
        return pending, result

    def validate(self, response: Any, expected_id: int) -> Any:
        if not isinstance(response, dict):
            raise MalformedResponseError("JSON-RPC 응답이 객체가 아니에요.")

        version_value = response.get("jsonrpc")
        if version_value != JSONRPC_VERSION:
            raise ProtocolVersionError(f"JSON-RPC 버전이 올바르지 않아요: {version_value!r}")

        response_id = response.get("id")
        if isinstance(response_id, bool) or response_id != expected_id:
            raise IdMismatchError(expected_id=expected_id, actual_id=response_id)

        error_value = response.get("error")
        if isinstance(error_value, dict):
            code_value = error_value.get("code")
            message_value = error_value.get("message")
            raise ServerError(
                code=code_value if isinstance(code_value, int) else 0,
                message=message_value if isinstance(message_value, str) else "MCP 오류가 발생했어요.",
                data=error_value.get("data"),
            )

        if "result" not in response or response["result"] is None:
            raise EmptyResultError()
        return response["result"]
