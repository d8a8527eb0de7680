from __future__ import annotations

from dataclasses import dataclass

from libs.common.errors import DomainError, ErrorEnvelope, ValidationError, build_error_envelope
from libs.common.logging import get_logger
from mcp_probe.app.everything import CORE_TOOLS, EverythingTools
from mcp_probe.app.mcp_client import McpClient

logger = get_logger("mcp_probe.smoke")

ECHO_PROBE_MESSAGE = "Hello, MCP World!"


@dataclass(slots=True, frozen=True)
class SmokeSuiteResult:
    success: bool
    session_id: str | None
    tool_count: int
    echo_message: str | None
    add_result: int | float | None
    error: ErrorEnvelope | None = None


async def run_smoke_suite(client: McpClient) -> SmokeSuiteResult:
    """initialize부터 echo, add까지 한 번에 점검해요.

    도메인 오류는 결과의 ``error``로 돌려주고, 그 밖의 예외는 그대로 올라가요.
    """
    tools = EverythingTools(client)
    tool_count = 0
    echo_message: str | None = None
    try:
        info = await client.initialize()
        available = await tools.validate_core_tools(CORE_TOOLS)
        tool_count = len(available)

        echo_message = await tools.echo(ECHO_PROBE_MESSAGE)
        if ECHO_PROBE_MESSAGE not in echo_message:
            raise ValidationError(f"echo 결과에 입력 메시지가 없어요: {echo_message!r}")

        add_result = await tools.add(2, 3)
        if add_result != 5:
            raise ValidationError(f"2 + 3은 5여야 하는데 {add_result}가 나왔어요.")
    except DomainError as exc:
        logger.warning("smoke_suite_failed", error_code=exc.error_code, stage=exc.stage, message=exc.message)
        return SmokeSuiteResult(
            success=False,
            session_id=client.session_id,
            tool_count=tool_count,
            echo_message=echo_message,
            add_result=None,
            error=build_error_envelope(exc),
        )

    logger.info("smoke_suite_passed", session_id=info.session_id, tool_count=tool_count)
    return SmokeSuiteResult(
        success=True,
        session_id=info.session_id,
        tool_count=tool_count,
        echo_message=echo_message,
        add_result=add_result,
    )
