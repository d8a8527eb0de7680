from __future__ import annotations

import asyncio
import enum
from typing import Any

from libs.common.errors import (
    DomainError,
    InitializationError,
    NotInitializedError,
    TimeoutError,
    TransportError,
)
from libs.common.logging import get_logger
from mcp_probe.app.mcp_correlator import RequestCorrelator
from mcp_probe.app.mcp_protocol import (
    JSONRPC_VERSION,
    MCP_SESSION_HEADER,
    METHOD_INITIALIZE,
    METHOD_NOTIFICATION_INITIALIZED,
    SUPPORTED_PROTOCOL_VERSIONS,
    McpImplementation,
    McpSessionInfo,
    optional_str,
    parse_implementation,
    parse_server_capabilities,
)
from mcp_probe.app.mcp_transport import McpTransport, extract_json

logger = get_logger("mcp_probe.session")


class McpSessionState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"
    FAILED = "failed"
    CLOSED = "closed"


class McpSession:
    """initialize 핸드셰이크 상태 머신과 세션 ID를 소유해요.

    실패하거나 닫힌 세션은 다시 쓸 수 없어요. 새 세션을 만들어야 해요.
    """

    def __init__(self, transport: McpTransport, *, protocol_version: str) -> None:
        self._transport = transport
        self._protocol_version = protocol_version
        self._correlator = RequestCorrelator()
        # 초기화 직렬화 전용이에요. request ID 잠금은 correlator가 따로 가져요.
        self._init_lock = asyncio.Lock()
        self._state = McpSessionState.UNINITIALIZED
        self._session_id: str | None = None
        self._info: McpSessionInfo | None = None

    @property
    def state(self) -> McpSessionState:
        return self._state

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def info(self) -> McpSessionInfo | None:
        return self._info

    @property
    def correlator(self) -> RequestCorrelator:
        return self._correlator

    @property
    def transport(self) -> McpTransport:
        return self._transport

    def ensure_initialized(self) -> str:
        if self._state is not McpSessionState.INITIALIZED or not self._session_id:
            raise NotInitializedError(f"MCP 세션이 초기화되지 않았어요. 현재 상태: {self._state.value}")
        return self._session_id

    async def initialize(self, client_info: McpImplementation, capabilities: dict[str, Any]) -> McpSessionInfo:
        async with self._init_lock:
            if self._state is not McpSessionState.UNINITIALIZED:
                raise InitializationError(f"이미 {self._state.value} 상태인 세션은 다시 초기화할 수 없어요.")
            self._state = McpSessionState.INITIALIZING
            try:
                info = await self._handshake(client_info, capabilities)
            except BaseException:
                self._state = McpSessionState.FAILED
                raise
            self._info = info
            self._state = McpSessionState.INITIALIZED
            logger.info(
                "mcp_session_initialized",
                session_id=info.session_id,
                protocol_version=info.protocol_version,
                server_name=info.server_info.name if info.server_info else None,
            )
            return info

    async def _handshake(self, client_info: McpImplementation, capabilities: dict[str, Any]) -> McpSessionInfo:
        pending = await self._correlator.register(METHOD_INITIALIZE)
        payload = {
            "jsonrpc": JSONRPC_VERSION,
            "id": pending.id,
            "method": METHOD_INITIALIZE,
            "params": {
                "protocolVersion": self._protocol_version,
                "capabilities": capabilities,
                "clientInfo": {"name": client_info.name, "version": client_info.version},
            },
        }
        try:
            response = await self._transport.send(payload)
            result = self._correlator.validate(extract_json(response.text), pending.id)
            session_id = (response.headers.get(MCP_SESSION_HEADER) or "").strip()
            if not session_id:
                raise InitializationError("initialize 응답에 Mcp-Session-Id 헤더가 없어요.")
        finally:
            self._correlator.expire(pending.id)

        if not isinstance(result, dict):
            raise InitializationError("initialize result가 객체가 아니에요.")

        protocol_version = optional_str(result.get("protocolVersion")) or self._protocol_version
        if protocol_version not in SUPPORTED_PROTOCOL_VERSIONS:
            raise InitializationError(f"지원하지 않는 프로토콜 버전이에요: {protocol_version}")

        self._session_id = session_id
        self._transport.protocol_version = protocol_version

        try:
            await self._transport.send([{"jsonrpc": JSONRPC_VERSION, "method": METHOD_NOTIFICATION_INITIALIZED}], session_id)
        except DomainError as exc:
            raise InitializationError(f"initialized 알림을 보내지 못했어요: {exc.message}") from exc

        return McpSessionInfo(
            session_id=session_id,
            protocol_version=protocol_version,
            server_info=parse_implementation(result.get("serverInfo")),
            server_capabilities=parse_server_capabilities(result.get("capabilities")),
            instructions=optional_str(result.get("instructions")),
        )

    async def request(self, method: str, params: dict[str, Any] | None = None) -> Any:
        session_id = self.ensure_initialized()
        pending = await self._correlator.register(method)
        payload: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": pending.id, "method": method}
        if params is not None:
            payload["params"] = params

        logger.debug("mcp_request_sent", method=method, request_id=pending.id)
        try:
            response = await self._transport.send(payload, session_id)
            self._check_session_header(response.headers.get(MCP_SESSION_HEADER))
            return self._correlator.validate(extract_json(response.text), pending.id)
        except TimeoutError:
            logger.warning("mcp_request_timed_out", method=method, request_id=pending.id)
            raise
        finally:
            self._correlator.expire(pending.id)

    async def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        session_id = self.ensure_initialized()
        payload: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "method": method}
        if params is not None:
            payload["params"] = params
        await self._transport.send(payload, session_id)

    def _check_session_header(self, header_value: str | None) -> None:
        if header_value and header_value != self._session_id:
            logger.warning("mcp_session_header_ignored", session_id=self._session_id, received=header_value)

    async def close(self) -> None:
        """세션 종료를 서버에 알리고 상태를 닫아요. 서버 통지는 최선 노력이에요."""
        session_id = self._session_id if self._state is McpSessionState.INITIALIZED else None
        self._state = McpSessionState.CLOSED
        try:
            if session_id:
                try:
                    response = await self._transport.delete_session(session_id)
                except TransportError as exc:
                    logger.warning("mcp_session_close_failed", session_id=session_id, error=exc.message)
                else:
                    if not response.is_success:
                        logger.warning("mcp_session_close_rejected", session_id=session_id, status_code=response.status_code)
        finally:
            await self._transport.aclose()
