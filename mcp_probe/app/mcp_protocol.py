from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal, TypeAlias

from libs.common.errors import MalformedResponseError

JSONRPC_VERSION = "2.0"
MCP_PROTOCOL_VERSION = "2025-06-18"
SUPPORTED_PROTOCOL_VERSIONS = ("2025-06-18", "2025-03-26")

MCP_SESSION_HEADER = "Mcp-Session-Id"
MCP_PROTOCOL_VERSION_HEADER = "MCP-Protocol-Version"

METHOD_INITIALIZE = "initialize"
METHOD_NOTIFICATION_INITIALIZED = "notifications/initialized"
METHOD_NOTIFICATION_CANCELLED = "notifications/cancelled"
METHOD_PING = "ping"
METHOD_TOOLS_LIST = "tools/list"
METHOD_TOOLS_CALL = "tools/call"
METHOD_RESOURCES_LIST = "resources/list"
METHOD_RESOURCES_READ = "resources/read"
METHOD_RESOURCES_TEMPLATES_LIST = "resources/templates/list"
METHOD_RESOURCES_SUBSCRIBE = "resources/subscribe"
METHOD_RESOURCES_UNSUBSCRIBE = "resources/unsubscribe"
METHOD_PROMPTS_LIST = "prompts/list"
METHOD_PROMPTS_GET = "prompts/get"
METHOD_LOGGING_SET_LEVEL = "logging/setLevel"

SERVER_CAPABILITY_FLAGS = ("tools", "resources", "prompts", "logging", "completions", "subscriptions")


@dataclass(slots=True, frozen=True)
class McpImplementation:
    name: str
    version: str


@dataclass(slots=True)
class McpTool:
    name: str
    title: str | None
    description: str | None
    input_schema: dict[str, Any]
    output_schema: dict[str, Any] | None = None


@dataclass(slots=True)
class McpPromptArgument:
    name: str
    description: str | None
    required: bool


@dataclass(slots=True)
class McpPrompt:
    name: str
    title: str | None
    description: str | None
    arguments: list[McpPromptArgument]


@dataclass(slots=True)
class McpResource:
    uri: str
    name: str
    title: str | None
    description: str | None
    mime_type: str | None


@dataclass(slots=True)
class McpResourceTemplate:
    uri_template: str
    name: str
    title: str | None
    description: str | None
    mime_type: str | None


@dataclass(slots=True, frozen=True)
class McpResourceContents:
    """resources/read 결과와 embedded resource 안에 들어가는 본문이에요. text와 blob 중 하나만 채워져요."""

    uri: str
    mime_type: str | None
    text: str | None = None
    blob: str | None = None


# content 항목은 "type" 값으로 구분되는 tagged union이에요.


@dataclass(slots=True, frozen=True)
class McpTextContent:
    text: str
    type: Literal["text"] = "text"


@dataclass(slots=True, frozen=True)
class McpImageContent:
    data: str
    mime_type: str
    type: Literal["image"] = "image"


@dataclass(slots=True, frozen=True)
class McpAudioContent:
    data: str
    mime_type: str
    type: Literal["audio"] = "audio"


@dataclass(slots=True, frozen=True)
class McpEmbeddedResource:
    resource: McpResourceContents
    type: Literal["resource"] = "resource"


@dataclass(slots=True, frozen=True)
class McpResourceLink:
    uri: str
    name: str
    description: str | None
    mime_type: str | None
    type: Literal["resource_link"] = "resource_link"


McpContent: TypeAlias = McpTextContent | McpImageContent | McpAudioContent | McpEmbeddedResource | McpResourceLink


@dataclass(slots=True, frozen=True)
class McpCallToolResult:
    content: tuple[McpContent, ...]
    is_error: bool
    structured_content: dict[str, Any] | None = None

    def texts(self) -> list[str]:
        return [item.text for item in self.content if isinstance(item, McpTextContent)]


@dataclass(slots=True, frozen=True)
class McpPromptMessage:
    role: str
    content: McpContent


@dataclass(slots=True, frozen=True)
class McpGetPromptResult:
    description: str | None
    messages: tuple[McpPromptMessage, ...]

    def texts(self) -> list[str]:
        return [message.content.text for message in self.messages if isinstance(message.content, McpTextContent)]

    def has_content_type(self, content_type: str) -> bool:
        return any(message.content.type == content_type for message in self.messages)


@dataclass(slots=True, frozen=True)
class McpReadResourceResult:
    contents: tuple[McpResourceContents, ...]


@dataclass(slots=True, frozen=True)
class McpServerCapabilities:
    tools: bool = False
    resources: bool = False
    prompts: bool = False
    logging: bool = False
    completions: bool = False
    subscriptions: bool = False
    raw: dict[str, Any] = field(default_factory=dict)

    def flags(self) -> frozenset[str]:
        return frozenset(flag for flag in SERVER_CAPABILITY_FLAGS if getattr(self, flag))


@dataclass(slots=True, frozen=True)
class McpSessionInfo:
    session_id: str
    protocol_version: str
    server_info: McpImplementation | None
    server_capabilities: McpServerCapabilities
    instructions: str | None
    initialized: bool = True


def optional_str(value: object) -> str | None:
    return value if isinstance(value, str) else None


def parse_server_capabilities(value: object) -> McpServerCapabilities:
    if not isinstance(value, dict):
        return McpServerCapabilities()
    resources_value = value.get("resources")
    return McpServerCapabilities(
        tools="tools" in value,
        resources="resources" in value,
        prompts="prompts" in value,
        logging="logging" in value,
        completions="completions" in value,
        subscriptions=isinstance(resources_value, dict) and bool(resources_value.get("subscribe")),
        raw=dict(value),
    )


def parse_implementation(value: object) -> McpImplementation | None:
    if not isinstance(value, dict):
        return None
    name_value = value.get("name")
    version_value = value.get("version")
    if not isinstance(name_value, str):
        return None
    return McpImplementation(name=name_value, version=version_value if isinstance(version_value, str) else "")


def parse_resource_contents(value: object) -> McpResourceContents:
    if not isinstance(value, dict) or not isinstance(value.get("uri"), str):
        raise MalformedResponseError("resource contents에 uri가 없어요.")
    return McpResourceContents(
        uri=value["uri"],
        mime_type=optional_str(value.get("mimeType")),
        text=optional_str(value.get("text")),
        blob=optional_str(value.get("blob")),
    )


def _parse_text(item: dict[str, Any]) -> McpContent:
    text_value = item.get("text")
    if not isinstance(text_value, str):
        raise MalformedResponseError("text content에 text 필드가 없어요.")
    return McpTextContent(text=text_value)


def _parse_image(item: dict[str, Any]) -> McpContent:
    return McpImageContent(data=str(item.get("data", "")), mime_type=str(item.get("mimeType", "")))


def _parse_audio(item: dict[str, Any]) -> McpContent:
    return McpAudioContent(data=str(item.get("data", "")), mime_type=str(item.get("mimeType", "")))


def _parse_embedded_resource(item: dict[str, Any]) -> McpContent:
    return McpEmbeddedResource(resource=parse_resource_contents(item.get("resource")))


def _parse_resource_link(item: dict[str, Any]) -> McpContent:
    uri_value = item.get("uri")
    if not isinstance(uri_value, str):
        raise MalformedResponseError("resource_link content에 uri가 없어요.")
    name_value = item.get("name")
    return McpResourceLink(
        uri=uri_value,
        name=name_value if isinstance(name_value, str) else uri_value,
        description=optional_str(item.get("description")),
        mime_type=optional_str(item.get("mimeType")),
    )


_CONTENT_PARSERS: dict[str, Callable[[dict[str, Any]], McpContent]] = {
    "text": _parse_text,
    "image": _parse_image,
    "audio": _parse_audio,
    "resource": _parse_embedded_resource,
    "resource_link": _parse_resource_link,
}


def parse_content(item: object) -> McpContent:
    if not isinstance(item, dict):
        raise MalformedResponseError("content 항목이 객체가 아니에요.")
    type_value = item.get("type")
    parser = _CONTENT_PARSERS.get(type_value) if isinstance(type_value, str) else None
    if parser is None:
        raise MalformedResponseError(f"지원하지 않는 content type이에요: {type_value!r}")
    return parser(item)


def parse_content_list(value: object) -> tuple[McpContent, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise MalformedResponseError("content가 배열이 아니에요.")
    return tuple(parse_content(item) for item in value)
