"""MCP Everything 테스트 서버 전용 도우미예요.

Everything 서버는 일부 결과(예: ``add``)를 구조화된 값 대신 문장으로 돌려줘요.
여기 있는 텍스트 해석은 그 서버 하나를 위한 호환 처리예요. 다른 서버에서도
같은 문장 형식이 나온다고 가정하면 안 돼요.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, TypeVar

from libs.common.errors import (
    InvalidArgumentError,
    NotFoundError,
    UnparsableResultError,
    ValidationError,
)
from libs.common.logging import get_logger
from mcp_probe.app.mcp_client import McpClient
from mcp_probe.app.mcp_protocol import (
    McpCallToolResult,
    McpContent,
    McpEmbeddedResource,
    McpGetPromptResult,
    McpImageContent,
    McpReadResourceResult,
    McpResource,
    McpTextContent,
)

logger = get_logger("mcp_probe.everything")

TOOL_ECHO = "echo"
TOOL_ADD = "add"
TOOL_PRINT_ENV = "printEnv"
TOOL_LONG_RUNNING_OPERATION = "longRunningOperation"
TOOL_ANNOTATED_MESSAGE = "annotatedMessage"
TOOL_STRUCTURED_CONTENT = "structuredContent"
TOOL_GET_TINY_IMAGE = "getTinyImage"
TOOL_GET_RESOURCE_REFERENCE = "getResourceReference"
TOOL_GET_RESOURCE_LINKS = "getResourceLinks"

CORE_TOOLS = frozenset({TOOL_ECHO, TOOL_PRINT_ENV, TOOL_ADD, TOOL_LONG_RUNNING_OPERATION})

PROMPT_SIMPLE = "simple_prompt"
PROMPT_COMPLEX = "complex_prompt"
PROMPT_RESOURCE = "resource_prompt"

# Everything 서버가 제공하는 정적 리소스 ID 범위예요.
RESOURCE_ID_MIN = 1
RESOURCE_ID_MAX = 100

MESSAGE_TYPES = ("success", "error", "debug")

Number = int | float
ContentT = TypeVar("ContentT", McpImageContent, McpEmbeddedResource)


def validate_resource_id(resource_id: object) -> int:
    if isinstance(resource_id, bool) or not isinstance(resource_id, int):
        raise InvalidArgumentError(f"resourceId는 정수여야 해요: {resource_id!r}")
    if not RESOURCE_ID_MIN <= resource_id <= RESOURCE_ID_MAX:
        raise InvalidArgumentError(
            f"resourceId {resource_id}는 {RESOURCE_ID_MIN}~{RESOURCE_ID_MAX} 범위여야 해요."
        )
    return resource_id


def _format_number(value: Number) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _to_number(token: str) -> Number:
    return float(token) if "." in token else int(token)


_NUMBER = r"(-?\d+(?:\.\d+)?)"


def parse_add_result(text: str, a: Number, b: Number) -> Number:
    """``add`` 도구의 문장 결과에서 합계를 꺼내요.

    순서대로 시도해요:
        1. ``The sum of A and B is Z``
        2. ``A + B = Z``
        3. 본문에 ``A + B`` 값이 그대로 들어 있는지
    모두 실패하면 `UnparsableResultError`를 던져요.
    """
    left, right = _format_number(a), _format_number(b)
    patterns = (
        rf"The sum of {re.escape(left)} and {re.escape(right)} is\s*{_NUMBER}",
        rf"{re.escape(left)}\s*\+\s*{re.escape(right)}\s*=\s*{_NUMBER}",
    )
    for pattern in patterns:
        match = re.search(pattern, text)
        if match:
            return _to_number(match.group(1))

    expected = a + b
    if re.search(rf"(?<![\d.]){re.escape(_format_number(expected))}(?![\d])", text):
        return expected

    raise UnparsableResultError(f"add 결과를 해석하지 못했어요: {text!r}")


def first_text(result: McpCallToolResult, tool_name: str) -> str:
    item = result.content[0]
    if not isinstance(item, McpTextContent):
        raise UnparsableResultError(f"{tool_name} 도구가 text 대신 {item.type} content를 반환했어요.")
    return item.text


def first_of_type(result: McpCallToolResult, content_type: type[ContentT], tool_name: str) -> ContentT:
    # Everything 서버는 설명 text를 먼저 보내고 실제 content를 그 뒤에 붙여요.
    for item in result.content:
        if isinstance(item, content_type):
            return item
    received = ", ".join(item.type for item in result.content)
    raise UnparsableResultError(f"{tool_name} 결과에 기대한 content가 없어요. 받은 type: {received}")


class EverythingTools:
    def __init__(self, client: McpClient) -> None:
        self._client = client

    async def echo(self, message: str) -> str:
        result = await self._client.call_tool(TOOL_ECHO, {"message": message})
        return first_text(result, TOOL_ECHO)

    async def add(self, a: Number, b: Number) -> Number:
        result = await self._client.call_tool(TOOL_ADD, {"a": a, "b": b})
        total = parse_add_result(first_text(result, TOOL_ADD), a, b)
        logger.debug("everything_add_parsed", a=a, b=b, total=total)
        return total

    async def print_env(self) -> str:
        result = await self._client.call_tool(TOOL_PRINT_ENV, {})
        return first_text(result, TOOL_PRINT_ENV)

    async def long_running_operation(
        self,
        duration_seconds: int,
        steps: int,
        progress_token: str | None = None,
    ) -> str:
        if duration_seconds < 0 or steps < 1:
            raise InvalidArgumentError("duration은 0 이상, steps는 1 이상이어야 해요.")
        result = await self._client.call_tool(
            TOOL_LONG_RUNNING_OPERATION,
            {"duration": duration_seconds, "steps": steps},
            progress_token=progress_token,
        )
        return first_text(result, TOOL_LONG_RUNNING_OPERATION)

    async def annotated_message(self, message_type: str, include_image: bool = False) -> tuple[McpContent, ...]:
        if message_type not in MESSAGE_TYPES:
            raise InvalidArgumentError(f"messageType은 {', '.join(MESSAGE_TYPES)} 중 하나여야 해요.")
        result = await self._client.call_tool(
            TOOL_ANNOTATED_MESSAGE,
            {"messageType": message_type, "includeImage": include_image},
        )
        return result.content

    async def structured_content(self, location: str | None = None) -> McpCallToolResult:
        arguments: dict[str, Any] = {} if location is None else {"location": location}
        return await self._client.call_tool(TOOL_STRUCTURED_CONTENT, arguments)

    async def get_tiny_image(self) -> McpImageContent:
        result = await self._client.call_tool(TOOL_GET_TINY_IMAGE, {})
        return first_of_type(result, McpImageContent, TOOL_GET_TINY_IMAGE)

    async def get_resource_reference(self, resource_id: int) -> McpEmbeddedResource:
        validate_resource_id(resource_id)
        result = await self._client.call_tool(TOOL_GET_RESOURCE_REFERENCE, {"resourceId": resource_id})
        return first_of_type(result, McpEmbeddedResource, TOOL_GET_RESOURCE_REFERENCE)

    async def get_resource_links(self, count: int = 3) -> tuple[McpContent, ...]:
        if count < 1:
            raise InvalidArgumentError("count는 1 이상이어야 해요.")
        result = await self._client.call_tool(TOOL_GET_RESOURCE_LINKS, {"count": count})
        return result.content

    async def validate_core_tools(self, expected: Iterable[str] = CORE_TOOLS) -> set[str]:
        """서버 도구 목록을 새로 읽고 기대한 도구가 모두 있는지 확인해요."""
        await self._client.list_tools()
        available = self._client.tool_names()
        missing = sorted(set(expected) - available)
        if missing:
            raise ValidationError(f"기대한 도구가 없어요: {', '.join(missing)} (사용 가능: {', '.join(sorted(available))})")
        return available


class EverythingPrompts:
    def __init__(self, client: McpClient) -> None:
        self._client = client

    async def simple(self) -> McpGetPromptResult:
        return await self._client.get_prompt(PROMPT_SIMPLE)

    async def complex(self, temperature: str, style: str | None = None) -> McpGetPromptResult:
        if not temperature:
            raise InvalidArgumentError("temperature는 필수예요.")
        return await self._client.get_prompt(PROMPT_COMPLEX, {"temperature": temperature, "style": style or ""})

    async def get_resource_prompt(self, resource_id: int) -> McpGetPromptResult:
        validate_resource_id(resource_id)
        return await self._client.get_prompt(PROMPT_RESOURCE, {"resourceId": str(resource_id)})


@dataclass(slots=True, frozen=True)
class ResourceStats:
    total_resources: int
    text_contents: int
    blob_contents: int
    total_size: int


class EverythingResources:
    def __init__(self, client: McpClient) -> None:
        self._client = client

    def find_by_name(self, name_pattern: str) -> list[McpResource]:
        pattern = name_pattern.lower()
        return [resource for resource in self._client.resources if pattern in resource.name.lower()]

    async def read(self, uri: str) -> McpReadResourceResult:
        resource = self._client.find_resource(uri)
        if resource is None:
            raise NotFoundError(f"리소스를 찾지 못했어요: {uri}")
        return await self._client.read_resource(resource)

    async def resource_text(self, uri: str) -> str:
        result = await self.read(uri)
        for contents in result.contents:
            if contents.text is not None:
                return contents.text
        raise ValidationError(f"텍스트 리소스가 아니에요: {uri}")

    async def resource_blob(self, uri: str) -> str:
        result = await self.read(uri)
        for contents in result.contents:
            if contents.blob is not None:
                return contents.blob
        raise ValidationError(f"바이너리 리소스가 아니에요: {uri}")

    async def resource_stats(self) -> ResourceStats:
        resources = await self._client.list_resources()
        text_contents = 0
        blob_contents = 0
        total_size = 0
        for resource in resources:
            result = await self._client.read_resource(resource)
            for contents in result.contents:
                if contents.text is not None:
                    text_contents += 1
                    total_size += len(contents.text)
                elif contents.blob is not None:
                    blob_contents += 1
                    total_size += len(contents.blob)
        return ResourceStats(
            total_resources=len(resources),
            text_contents=text_contents,
            blob_contents=blob_contents,
            total_size=total_size,
        )
