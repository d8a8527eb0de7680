from __future__ import annotations

import pytest

from libs.common.errors import ConfigurationError, ServerError, TimeoutError, ToolExecutionError
from libs.common.retry import retry_async
from mcp_probe.app.mcp_client import McpClient
from mcp_probe.app.settings import McpClientConfig, Settings
from mcp_probe.app.smoke import run_smoke_suite


@pytest.mark.asyncio
async def test_smoke_suite_passes_against_everything_server(mcp_client: McpClient) -> None:
    result = await run_smoke_suite(mcp_client)

    assert result.success is True
    assert result.session_id == "abc123"
    assert result.tool_count == 6
    assert result.echo_message == "Hello, MCP World!"
    assert result.add_result == 5
    assert result.error is None


@pytest.mark.asyncio
@pytest.mark.parametrize("server_options", [{"add_text_template": "The sum of {a} and {b} is 6."}])
async def test_smoke_suite_reports_wrong_sum(mcp_client: McpClient) -> None:
    result = await run_smoke_suite(mcp_client)

    assert result.success is False
    assert result.error is not None
    assert result.error.error_code == "VALIDATION_FAILED"
    assert result.echo_message == "Hello, MCP World!"


@pytest.mark.asyncio
@pytest.mark.parametrize("server_options", [{"omit_session_header": True}])
async def test_smoke_suite_reports_initialization_failure(mcp_client: McpClient) -> None:
    result = await run_smoke_suite(mcp_client)

    assert result.success is False
    assert result.session_id is None
    assert result.error is not None
    assert result.error.error_code == "INITIALIZATION_FAILED"
    assert result.error.stage == "protocol"


@pytest.mark.parametrize(
    "overrides",
    [
        {"server_url": "   "},
        {"server_url": "localhost:3001/mcp"},
        {"server_url": "http://localhost:3001/mcp", "request_timeout_seconds": 0},
        {"server_url": "http://localhost:3001/mcp", "protocol_version": "2024-11-05"},
        {"server_url": "http://localhost:3001/mcp", "client_name": ""},
    ],
)
def test_client_config_is_validated_at_construction(overrides: dict[str, object]) -> None:
    with pytest.raises(ConfigurationError):
        McpClientConfig(**overrides)  # type: ignore[arg-type]


def test_client_config_strips_server_url() -> None:
    config = McpClientConfig(server_url="  http://localhost:3001/mcp ")
    assert config.server_url == "http://localhost:3001/mcp"
    assert config.capabilities["roots"] == {"listChanged": True}


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MCP_PROBE_SERVER_URL", " http://mcp.internal:8080/mcp ")
    monkeypatch.setenv("MCP_PROBE_REQUEST_TIMEOUT_SECONDS", "7.5")
    monkeypatch.setenv("MCP_PROBE_PROTOCOL_VERSION", "2025-03-26")

    config = Settings(_env_file=None).to_client_config()

    assert config.server_url == "http://mcp.internal:8080/mcp"
    assert config.request_timeout_seconds == 7.5
    assert config.protocol_version == "2025-03-26"


@pytest.mark.asyncio
async def test_retry_layer_retries_only_retryable_errors() -> None:
    attempts: list[int] = []

    async def flaky() -> str:
        attempts.append(1)
        if len(attempts) < 3:
            raise TimeoutError()
        return "ok"

    assert await retry_async(flaky, retries=3, base_delay_seconds=0, max_delay_seconds=0) == "ok"
    assert len(attempts) == 3

    tool_attempts: list[int] = []

    async def failing_tool() -> str:
        tool_attempts.append(1)
        raise ToolExecutionError("boom")

    with pytest.raises(ToolExecutionError):
        await retry_async(failing_tool, retries=3, base_delay_seconds=0, max_delay_seconds=0)
    assert len(tool_attempts) == 1


@pytest.mark.asyncio
async def test_retry_layer_gives_up_after_budget() -> None:
    attempts: list[int] = []

    async def always_rejected() -> None:
        attempts.append(1)
        raise ServerError(-32603, "Internal error")

    with pytest.raises(ServerError):
        await retry_async(always_rejected, retries=2, base_delay_seconds=0, max_delay_seconds=0)
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_retry_layer_does_not_repeat_invalid_params() -> None:
    attempts: list[int] = []

    async def invalid_params() -> None:
        attempts.append(1)
        raise ServerError(-32602, "Unknown tool: doesNotExist")

    with pytest.raises(ServerError):
        await retry_async(invalid_params, retries=3, base_delay_seconds=0, max_delay_seconds=0)
    assert len(attempts) == 1
