from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
import pytest
import pytest_asyncio

from mcp_probe.app.mcp_client import McpClient
from mcp_probe.app.settings import McpClientConfig
from tests.mock_everything_server import MOCK_SERVER_URL, MockEverythingServer

ServerFactory = Callable[..., MockEverythingServer]


@pytest.fixture
def server_options() -> dict[str, Any]:
    """개별 테스트가 덮어써서 목 서버 동작을 바꾸는 옵션이에요."""
    return {}


@pytest.fixture
def everything_server(server_options: dict[str, Any]) -> MockEverythingServer:
    return MockEverythingServer(**server_options)


@pytest_asyncio.fixture
async def http_client(everything_server: MockEverythingServer) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=everything_server.app)) as client:
        yield client


@pytest_asyncio.fixture
async def mcp_client(http_client: httpx.AsyncClient) -> AsyncIterator[McpClient]:
    client = McpClient(
        McpClientConfig(server_url=MOCK_SERVER_URL, request_timeout_seconds=5.0),
        http_client=http_client,
    )
    yield client
    await client.close()


@pytest_asyncio.fixture
async def initialized_client(mcp_client: McpClient) -> McpClient:
    await mcp_client.initialize()
    return mcp_client


def build_mock_transport_client(
    handler: Callable[[httpx.Request], httpx.Response],
    **config: Any,
) -> tuple[McpClient, httpx.AsyncClient]:
    """실패 경로 테스트용으로 ``httpx.MockTransport`` 위에 클라이언트를 만들어요."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    config.setdefault("request_timeout_seconds", 1.0)
    return McpClient(McpClientConfig(server_url=MOCK_SERVER_URL, **config), http_client=http_client), http_client
