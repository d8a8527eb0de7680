from __future__ import annotations

import asyncio
import sys

from libs.common.errors import DomainError
from libs.common.logging import configure_logging, get_logger
from mcp_probe.app.mcp_client import create_client
from mcp_probe.app.settings import Settings
from mcp_probe.app.smoke import run_smoke_suite

logger = get_logger("mcp_probe.cli")


async def _smoke(settings: Settings) -> int:
    async with create_client(settings.to_client_config()) as client:
        result = await run_smoke_suite(client)
    if result.success:
        logger.info(
            "smoke_result",
            session_id=result.session_id,
            tool_count=result.tool_count,
            echo=result.echo_message,
            add=result.add_result,
        )
        return 0
    logger.error("smoke_result", session_id=result.session_id, error=result.error)
    return 1


async def _listen(settings: Settings) -> int:
    async with create_client(settings.to_client_config()) as client:
        info = await client.initialize()
        logger.info("listen_started", session_id=info.session_id, server_url=settings.server_url)
        async for event in client.open_stream():
            logger.info("stream_event", event=event.event, event_id=event.id, data=event.data)
    return 0


def _run(command: str) -> None:
    settings = Settings()
    configure_logging(settings.log_level, json_output=settings.log_json)
    runner = _smoke if command == "smoke" else _listen
    try:
        exit_code = asyncio.run(runner(settings))
    except KeyboardInterrupt:
        exit_code = 130
    except DomainError as exc:
        logger.error("command_failed", command=command, error_code=exc.error_code, stage=exc.stage, message=exc.message)
        exit_code = 1
    sys.exit(exit_code)


def main() -> None:
    _run("smoke")


def main_listen() -> None:
    _run("listen")
