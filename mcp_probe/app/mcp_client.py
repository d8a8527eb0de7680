from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Generic, TypeVar

import httpx

from libs.common.errors import (
    EmptyResultError,
    InvalidArgumentError,
    MalformedResponseError,
    ToolExecutionError,
)
from libs.common.logging import get_logger
from mcp_probe.app.mcp_protocol import (
    METHOD_LOGGING_SET_LEVEL,
    METHOD_NOTIFICATION_CANCELLED,
    METHOD_PING,
    METHOD_PROMPTS_GET,
    METHOD_PROMPTS_LIST,
    METHOD_RESOURCES_LIST,
    METHOD_RESOURCES_READ,
    METHOD_RESOURCES_SUBSCRIBE,
    METHOD_RESOURCES_TEMPLATES_LIST,
    METHOD_RESOURCES_UNSUBSCRIBE,
    METHOD_TOOLS_CALL,
    METHOD_TOOLS_LIST,
    McpCallToolResult,
    McpGetPromptResult,
    McpImplementation,
    McpPrompt,
    McpPromptArgument,
    McpPromptMessage,
    McpReadResourceResult,
    McpResource,
    McpResourceTemplate,
    McpSessionInfo,
    McpTextContent,
    McpTool,
    optional_str,
    parse_content,
    parse_content_list,
    parse_resource_contents,
)
from mcp_probe.app.mcp_session import McpSession, McpSessionState
from mcp_probe.app.mcp_transport import McpStreamEvent, McpTransport
from mcp_probe.app.settings import McpClientConfig

logger = get_logger("mcp_probe.client")

T = TypeVar("T")

LOGGING_LEVELS = ("debug", "info", "notice", "warning", "error", "critical", "alert", "emergency")


@dataclass(slots=True, frozen=True)
class McpPage(Generic[T]):
    items: list[T]
    next_cursor: str | None


def _parse_tool(item: dict[str, Any]) -> McpTool | None:
    name_value = item.get("name")
    if not isinstance(name_value, str):
        return None
    input_schema_value = item.get("inputSchema")
    output_schema_value = item.get("outputSchema")
    return McpTool(
        name=name_value,
        title=optional_str(item.get("title")),
        description=optional_str(item.get("description")),
        input_schema=input_schema_value if isinstance(input_schema_value, dict) else {},
        output_schema=output_schema_value if isinstance(output_schema_value, dict) else None,
    )


def _parse_prompt(item: dict[str, Any]) -> McpPrompt | None:
    name_value = item.get("name")
    if not isinstance(name_value, str):
        return None

    arguments: list[McpPromptArgument] = []
    arguments_value = item.get("arguments")
    if isinstance(arguments_value, list):
        for argument_item in arguments_value:
            if not isinstance(argument_item, dict) or not isinstance(argument_item.get("name"), str):
                continue
            arguments.append(
                McpPromptArgument(
                    name=argument_item["name"],
                    description=optional_str(argument_item.get("description")),
                    required=bool(argument_item.get("required")),
                )
            )

    return McpPrompt(
        name=name_value,
        title=optional_str(item.get("title")),
        description=optional_str(item.get("description")),
        arguments=arguments,
    )


def _parse_resource(item: dict[str, Any]) -> McpResource | None:
    uri_value = item.get("uri")
    name_value = item.get("name")
    if not isinstance(uri_value, str) or not isinstance(name_value, str):
        return None
    return McpResource(
        uri=uri_value,
        name=name_value,
        title=optional_str(item.get("title")),
        description=optional_str(item.get("description")),
        mime_type=optional_str(item.get("mimeType")),
    )


def _parse_resource_template(item: dict[str, Any]) -> McpResourceTemplate | None:
    uri_template_value = item.get("uriTemplate")
    name_value = item.get("name")
    if not isinstance(uri_template_value, str) or not isinstance(name_value, str):
        return None
    return McpResourceTemplate(
        uri_template=uri_template_value,
        name=name_value,
        title=optional_str(item.get("title")),
        description=optional_str(item.get("description")),
        mime_type=optional_str(item.get("mimeType")),
    )


def _require_name(value: object, kind: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgumentError(f"{kind} 이름이 비어 있어요.")
    return value


def _require_dict(result: Any, method: str) -> dict[str, Any]:
    if not isinstance(result, dict):
        raise MalformedResponseError(f"MCP {method} 응답 형식이 올바르지 않아요.")
    return result


def tool_error_message(result: McpCallToolResult) -> str:
    if result.content and isinstance(result.content[0], McpTextContent):
        return result.content[0].text
    return "도구가 오류를 반환했지만 텍스트 메시지가 없어요."


class McpClient:
    """MCP 서버의 도구, 리소스, 프롬프트를 타입이 있는 API로 노출해요.

    한 세션에서는 한 번에 하나의 요청을 기다리는 사용을 전제로 해요.
    목록 호출 결과는 캐시에 남지만 자동으로 무효화하지 않아요.
    최신 목록이 필요하면 다시 ``list_*``를 호출해야 해요.
    """

    def __init__(self, config: McpClientConfig, *, http_client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        transport = McpTransport(
            server_url=config.server_url,
            timeout_seconds=config.request_timeout_seconds,
            token=config.token,
            http_client=http_client,
        )
        self._session = McpSession(transport, protocol_version=config.protocol_version)
        self._tools: list[McpTool] = []
        self._resources: list[McpResource] = []
        self._resource_templates: list[McpResourceTemplate] = []
        self._prompts: list[McpPrompt] = []

    async def __aenter__(self) -> McpClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def config(self) -> McpClientConfig:
        return self._config

    @property
    def session(self) -> McpSession:
        return self._session

    @property
    def session_id(self) -> str | None:
        return self._session.session_id

    @property
    def tools(self) -> list[McpTool]:
        return list(self._tools)

    @property
    def resources(self) -> list[McpResource]:
        return list(self._resources)

    @property
    def resource_templates(self) -> list[McpResourceTemplate]:
        return list(self._resource_templates)

    @property
    def prompts(self) -> list[McpPrompt]:
        return list(self._prompts)

    def tool_names(self) -> set[str]:
        return {tool.name for tool in self._tools}

    def find_tool(self, name: str) -> McpTool | None:
        return next((tool for tool in self._tools if tool.name == name), None)

    def find_prompt(self, name: str) -> McpPrompt | None:
        return next((prompt for prompt in self._prompts if prompt.name == name), None)

    def find_resource(self, uri: str) -> McpResource | None:
        return next((resource for resource in self._resources if resource.uri == uri), None)

    async def initialize(self) -> McpSessionInfo:
        return await self._session.initialize(
            McpImplementation(name=self._config.client_name, version=self._config.client_version),
            self._config.capabilities,
        )

    async def close(self) -> None:
        if self._session.state is not McpSessionState.CLOSED:
            await self._session.close()

    async def ping(self) -> None:
        _require_dict(await self._session.request(METHOD_PING), METHOD_PING)

    async def list_tools(self) -> list[McpTool]:
        self._tools = await self._list_all(METHOD_TOOLS_LIST, "tools", _parse_tool)
        logger.debug("mcp_tools_listed", count=len(self._tools))
        return list(self._tools)

    async def list_tools_page(self, cursor: str | None = None) -> McpPage[McpTool]:
        return await self._list_page(METHOD_TOOLS_LIST, "tools", _parse_tool, cursor)

    async def list_resources(self) -> list[McpResource]:
        self._resources = await self._list_all(METHOD_RESOURCES_LIST, "resources", _parse_resource)
        return list(self._resources)

    async def list_resources_page(self, cursor: str | None = None) -> McpPage[McpResource]:
        return await self._list_page(METHOD_RESOURCES_LIST, "resources", _parse_resource, cursor)

    async def list_resource_templates(self) -> list[McpResourceTemplate]:
        self._resource_templates = await self._list_all(
            METHOD_RESOURCES_TEMPLATES_LIST,
            "resourceTemplates",
            _parse_resource_template,
        )
        return list(self._resource_templates)

    async def list_prompts(self) -> list[McpPrompt]:
        self._prompts = await self._list_all(METHOD_PROMPTS_LIST, "prompts", _parse_prompt)
        return list(self._prompts)

    async def list_prompts_page(self, cursor: str | None = None) -> McpPage[McpPrompt]:
        return await self._list_page(METHOD_PROMPTS_LIST, "prompts", _parse_prompt, cursor)

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        *,
        progress_token: str | None = None,
    ) -> McpCallToolResult:
        self._session.ensure_initialized()
        _require_name(name, "도구")
        if arguments is not None and not isinstance(arguments, dict):
            raise InvalidArgumentError("도구 인자는 딕셔너리여야 해요.")

        params: dict[str, Any] = {"name": name, "arguments": arguments or {}}
        if progress_token is not None:
            params["_meta"] = {"progressToken": progress_token}

        result = _require_dict(await self._session.request(METHOD_TOOLS_CALL, params), METHOD_TOOLS_CALL)
        structured_value = result.get("structuredContent")
        call_result = McpCallToolResult(
            content=parse_content_list(result.get("content")),
            is_error=result.get("isError") is True,
            structured_content=structured_value if isinstance(structured_value, dict) else None,
        )
        if call_result.is_error:
            raise ToolExecutionError(f"{name} 도구 실행 실패: {tool_error_message(call_result)}", tool_name=name)
        if not call_result.content:
            raise EmptyResultError(f"{name} 도구가 빈 content를 반환했어요.")
        logger.debug("mcp_tool_called", tool=name, content_count=len(call_result.content))
        return call_result

    async def read_resource(self, resource: str | McpResource) -> McpReadResourceResult:
        self._session.ensure_initialized()
        uri = resource.uri if isinstance(resource, McpResource) else resource
        if not isinstance(uri, str) or not uri.strip():
            raise InvalidArgumentError("리소스 URI가 비어 있어요.")

        result = _require_dict(await self._session.request(METHOD_RESOURCES_READ, {"uri": uri}), METHOD_RESOURCES_READ)
        contents_value = result.get("contents")
        if not isinstance(contents_value, list) or not contents_value:
            raise EmptyResultError(f"{uri} 리소스가 빈 contents를 반환했어요.")
        return McpReadResourceResult(contents=tuple(parse_resource_contents(item) for item in contents_value))

    async def subscribe_resource(self, uri: str) -> None:
        self._session.ensure_initialized()
        _require_name(uri, "리소스 URI")
        await self._session.request(METHOD_RESOURCES_SUBSCRIBE, {"uri": uri})

    async def unsubscribe_resource(self, uri: str) -> None:
        self._session.ensure_initialized()
        _require_name(uri, "리소스 URI")
        await self._session.request(METHOD_RESOURCES_UNSUBSCRIBE, {"uri": uri})

    async def get_prompt(self, name: str, arguments: dict[str, str | None] | None = None) -> McpGetPromptResult:
        self._session.ensure_initialized()
        _require_name(name, "프롬프트")
        params: dict[str, Any] = {"name": name}
        # 값이 None인 선택 인자는 보내지 않아요.
        prompt_arguments = {key: str(value) for key, value in (arguments or {}).items() if value is not None}
        if prompt_arguments:
            params["arguments"] = prompt_arguments

        result = _require_dict(await self._session.request(METHOD_PROMPTS_GET, params), METHOD_PROMPTS_GET)
        messages_value = result.get("messages")
        if not isinstance(messages_value, list) or not messages_value:
            raise EmptyResultError(f"{name} 프롬프트가 빈 messages를 반환했어요.")

        messages: list[McpPromptMessage] = []
        for message_item in messages_value:
            if not isinstance(message_item, dict):
                raise MalformedResponseError("prompt message가 객체가 아니에요.")
            role_value = message_item.get("role")
            messages.append(
                McpPromptMessage(
                    role=role_value if isinstance(role_value, str) else "user",
                    content=parse_content(message_item.get("content")),
                )
            )
        return McpGetPromptResult(description=optional_str(result.get("description")), messages=tuple(messages))

    async def set_logging_level(self, level: str) -> None:
        self._session.ensure_initialized()
        if level not in LOGGING_LEVELS:
            raise InvalidArgumentError(f"지원하지 않는 로그 레벨이에요: {level}")
        await self._session.request(METHOD_LOGGING_SET_LEVEL, {"level": level})

    async def cancel_request(self, request_id: int, reason: str) -> None:
        self._session.ensure_initialized()
        if request_id < 1:
            raise InvalidArgumentError(f"요청 ID가 올바르지 않아요: {request_id}")
        await self._session.notify(METHOD_NOTIFICATION_CANCELLED, {"requestId": request_id, "reason": reason})

    def open_stream(self) -> AsyncIterator[McpStreamEvent]:
        session_id = self._session.ensure_initialized()
        return self._session.transport.open_stream(session_id)

    async def _list_page(
        self,
        method: str,
        list_key: str,
        parse: Callable[[dict[str, Any]], T | None],
        cursor: str | None,
    ) -> McpPage[T]:
        params = {"cursor": cursor} if cursor else {}
        result = _require_dict(await self._session.request(method, params), method)

        items: list[T] = []
        page_value = result.get(list_key)
        if isinstance(page_value, list):
            for item in page_value:
                if not isinstance(item, dict):
                    continue
                parsed = parse(item)
                if parsed is not None:
                    items.append(parsed)

        next_cursor_value = result.get("nextCursor")
        next_cursor = next_cursor_value if isinstance(next_cursor_value, str) and next_cursor_value else None
        return McpPage(items=items, next_cursor=next_cursor)

    async def _list_all(
        self,
        method: str,
        list_key: str,
        parse: Callable[[dict[str, Any]], T | None],
    ) -> list[T]:
        items: list[T] = []
        cursor: str | None = None
        seen_cursors: set[str] = set()

        while True:
            page = await self._list_page(method, list_key, parse, cursor)
            items.extend(page.items)
            if page.next_cursor is None:
                break
            if page.next_cursor in seen_cursors:
                raise MalformedResponseError(f"MCP {method} pagination cursor 순환이 감지됐어요.")
            seen_cursors.add(page.next_cursor)
            cursor = page.next_cursor

        return items


def create_client(config: McpClientConfig, *, http_client: httpx.AsyncClient | None = None) -> McpClient:
    return McpClient(config, http_client=http_client)
