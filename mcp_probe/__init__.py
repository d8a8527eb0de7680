from __future__ import annotations

from mcp_probe.app.mcp_client import McpClient, McpPage, create_client
from mcp_probe.app.mcp_outcome import McpOutcome, capture
from mcp_probe.app.mcp_session import McpSession, McpSessionState
from mcp_probe.app.settings import McpClientConfig, Settings

__all__ = [
    "McpClient",
    "McpClientConfig",
    "McpOutcome",
    "McpPage",
    "McpSession",
    "McpSessionState",
    "Settings",
    "capture",
    "create_client",
]
