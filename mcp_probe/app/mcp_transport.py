"""MCP Streamable HTTP 전송 계층이에요.

JSON-RPC 메시지를 HTTP POST로 보내고, 응답 본문이 일반 JSON이든
단일 SSE 프레임이든 같은 JSON 문서로 풀어줘요. 재시도는 하지 않아요.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import httpx
from httpx_sse import SSEError, aconnect_sse

from libs.common.errors import MalformedResponseError, TimeoutError, TransportError
from libs.common.logging import get_logger
from mcp_probe.app.mcp_protocol import MCP_PROTOCOL_VERSION_HEADER, MCP_SESSION_HEADER

logger = get_logger("mcp_probe.transport")

ACCEPT_POST = "application/json, text/event-stream"
ACCEPT_STREAM = "text/event-stream"


@dataclass(slots=True, frozen=True)
class McpStreamEvent:
    event: str
    data: str
    id: str
    retry: int | None

    def json(self) -> Any:
        try:
            return json.loads(self.data)
        except json.JSONDecodeError as exc:
            raise MalformedResponseError("SSE 이벤트 data가 JSON이 아니에요.") from exc


def _is_sse_body(lines: list[str]) -> bool:
    has_event = any(line.startswith("event:") for line in lines)
    has_data = any(line.startswith("data:") for line in lines)
    return has_event and has_data


def extract_json(body: str) -> Any:
    """응답 본문에서 JSON 문서를 꺼내요.

    ``event:`` 줄과 ``data:`` 줄이 함께 있으면 SSE 프레임으로 보고 첫 번째
    ``data:`` 줄만 파싱해요. 그렇지 않으면 본문 전체를 JSON으로 파싱해요.
    """
    lines = body.splitlines()
    if any(line.startswith("event:") for line in lines):
        if not _is_sse_body(lines):
            raise MalformedResponseError("SSE 응답에 data 줄이 없어요.")
        payload = next(line for line in lines if line.startswith("data:"))[len("data:") :]
        if payload.startswith(" "):
            payload = payload[1:]
    else:
        payload = body

    try:
        return json.loads(payload)
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(f"응답 JSON을 파싱하지 못했어요: {exc.msg}") from exc


class McpTransport:
    def __init__(
        self,
        *,
        server_url: str,
        timeout_seconds: float,
        token: str = "",
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._server_url = server_url
        self._token = token
        self._timeout_seconds = timeout_seconds
        self._owns_client = http_client is None
        self._client = http_client if http_client is not None else httpx.AsyncClient(timeout=timeout_seconds)
        self.protocol_version: str | None = None

    @property
    def server_url(self) -> str:
        return self._server_url

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def build_headers(self, *, session_id: str | None, accept: str = ACCEPT_POST) -> dict[str, str]:
        headers = {"Accept": accept}
        if accept == ACCEPT_POST:
            headers["Content-Type"] = "application/json"
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        if self.protocol_version:
            headers[MCP_PROTOCOL_VERSION_HEADER] = self.protocol_version
        if session_id:
            headers[MCP_SESSION_HEADER] = session_id
        return headers

    async def send(self, payload: dict[str, Any] | list[dict[str, Any]], session_id: str | None = None) -> httpx.Response:
        headers = self.build_headers(session_id=session_id)
        try:
            response = await self._client.post(
                self._server_url,
                content=json.dumps(payload),
                headers=headers,
                timeout=self._timeout_seconds,
            )
        except httpx.TimeoutException as exc:
            raise TimeoutError(f"MCP 요청이 {self._timeout_seconds}초 안에 끝나지 않았어요.") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"MCP 요청 중 네트워크 오류가 발생했어요: {exc}") from exc

        if not response.is_success:
            raise TransportError(
                f"MCP 서버가 HTTP {response.status_code}로 응답했어요.",
                status_code=response.status_code,
            )
        return response

    async def delete_session(self, session_id: str) -> httpx.Response:
        headers = self.build_headers(session_id=session_id, accept=ACCEPT_POST)
        headers.pop("Content-Type", None)
        try:
            return await self._client.delete(self._server_url, headers=headers, timeout=self._timeout_seconds)
        except httpx.TimeoutException as exc:
            raise TimeoutError("MCP 세션 종료 요청이 시간 초과됐어요.") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"MCP 세션 종료 요청 중 네트워크 오류가 발생했어요: {exc}") from exc

    async def open_stream(self, session_id: str) -> AsyncIterator[McpStreamEvent]:
        """서버가 먼저 보내는 알림을 읽는 GET SSE 스트림이에요.

        제너레이터를 ``aclose()`` 하거나 태스크를 취소하면 연결이 즉시 닫히고
        오류 없이 끝나요. 이벤트를 기다리는 동안에는 읽기 시간 제한이 없어요.
        """
        headers = self.build_headers(session_id=session_id, accept=ACCEPT_STREAM)
        timeout = httpx.Timeout(self._timeout_seconds, read=None)
        try:
            async with aconnect_sse(self._client, "GET", self._server_url, headers=headers, timeout=timeout) as source:
                if not source.response.is_success:
                    raise TransportError(
                        f"MCP 스트림 요청이 HTTP {source.response.status_code}로 거절됐어요.",
                        status_code=source.response.status_code,
                    )
                logger.info("mcp_stream_opened", session_id=session_id)
                async for sse in source.aiter_sse():
                    yield McpStreamEvent(event=sse.event, data=sse.data, id=sse.id, retry=sse.retry)
        except SSEError as exc:
            raise MalformedResponseError(f"MCP 스트림이 SSE 형식이 아니에요: {exc}") from exc
        except httpx.TimeoutException as exc:
            raise TimeoutError("MCP 스트림 연결이 시간 초과됐어요.") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"MCP 스트림 중 네트워크 오류가 발생했어요: {exc}") from exc
        finally:
            logger.info("mcp_stream_closed", session_id=session_id)
