from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from libs.common.errors import ConfigurationError
from mcp_probe.app.mcp_protocol import MCP_PROTOCOL_VERSION, SUPPORTED_PROTOCOL_VERSIONS


def default_client_capabilities() -> dict[str, Any]:
    return {
        "roots": {"listChanged": True},
        "sampling": {},
        "elicitation": {},
    }


@dataclass(slots=True, frozen=True)
class McpClientConfig:
    """클라이언트 생성에 필요한 설정이에요. 생성 시점에 바로 검증해요."""

    server_url: str
    request_timeout_seconds: float = 30.0
    protocol_version: str = MCP_PROTOCOL_VERSION
    client_name: str = "mcp-probe"
    client_version: str = "0.1.0"
    token: str = ""
    capabilities: dict[str, Any] = field(default_factory=default_client_capabilities)

    def __post_init__(self) -> None:
        server_url = self.server_url.strip()
        if not server_url:
            raise ConfigurationError("MCP 서버 주소가 설정되지 않았어요.")
        if not server_url.startswith(("http://", "https://")):
            raise ConfigurationError(f"MCP 서버 주소는 http(s) URL이어야 해요: {server_url}")
        if self.request_timeout_seconds <= 0:
            raise ConfigurationError("요청 시간 제한은 0보다 커야 해요.")
        if self.protocol_version not in SUPPORTED_PROTOCOL_VERSIONS:
            raise ConfigurationError(f"지원하지 않는 프로토콜 버전이에요: {self.protocol_version}")
        if not self.client_name:
            raise ConfigurationError("client_name이 비어 있어요.")
        object.__setattr__(self, "server_url", server_url)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MCP_PROBE_",
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    server_url: str = "http://localhost:3001/mcp"
    request_timeout_seconds: float = 30.0
    protocol_version: str = MCP_PROTOCOL_VERSION
    client_name: str = "mcp-probe"
    client_version: str = "0.1.0"
    token: str = ""
    log_level: str = "INFO"
    log_json: bool = True

    @field_validator("server_url", mode="before")
    @classmethod
    def _strip_server_url(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value

    def to_client_config(self) -> McpClientConfig:
        return McpClientConfig(
            server_url=self.server_url,
            request_timeout_seconds=self.request_timeout_seconds,
            protocol_version=self.protocol_version,
            client_name=self.client_name,
            client_version=self.client_version,
            token=self.token,
        )
