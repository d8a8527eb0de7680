from __future__ import annotations

import pytest

from libs.common.errors import (
    InvalidArgumentError,
    NotFoundError,
    NotInitializedError,
    UnparsableResultError,
    ValidationError,
)
from mcp_probe.app.everything import (
    EverythingPrompts,
    EverythingResources,
    EverythingTools,
    first_of_type,
    parse_add_result,
    validate_resource_id,
)
from mcp_probe.app.mcp_client import McpClient
from mcp_probe.app.mcp_protocol import McpCallToolResult, McpEmbeddedResource, McpImageContent, McpTextContent
from tests.mock_everything_server import MockEverythingServer


@pytest.mark.parametrize(
    ("text", "a", "b", "expected"),
    [
        ("The sum of 2 and 3 is 5.", 2, 3, 5),
        ("The sum of -4 and 10 is 6", -4, 10, 6),
        ("2 + 3 = 5", 2, 3, 5),
        ("Result: 1.5 + 2 = 3.5 (approx)", 1.5, 2, 3.5),
        ("Answer is 42!", 40, 2, 42),
    ],
)
def test_parse_add_result_fallbacks(text: str, a: int | float, b: int | float, expected: int | float) -> None:
    assert parse_add_result(text, a, b) == expected


def test_parse_add_result_prefers_sum_sentence_over_other_numbers() -> None:
    assert parse_add_result("Checked 5 inputs. The sum of 2 and 3 is 7.", 2, 3) == 7


@pytest.mark.parametrize("text", ["no numbers here", "The total is 55", "The answer is 15"])
def test_parse_add_result_gives_up(text: str) -> None:
    with pytest.raises(UnparsableResultError):
        parse_add_result(text, 2, 3)


@pytest.mark.parametrize("resource_id", [0, 101, -1, True, "5"])
def test_validate_resource_id_rejects_out_of_range(resource_id: object) -> None:
    with pytest.raises(InvalidArgumentError):
        validate_resource_id(resource_id)


@pytest.mark.asyncio
@pytest.mark.parametrize("resource_id", [0, 101])
async def test_resource_prompt_bounds_fail_before_any_request(
    mcp_client: McpClient,
    everything_server: MockEverythingServer,
    resource_id: int,
) -> None:
    with pytest.raises(InvalidArgumentError):
        await EverythingPrompts(mcp_client).get_resource_prompt(resource_id)
    assert everything_server.requests == []


@pytest.mark.asyncio
@pytest.mark.parametrize("resource_id", [1, 100])
async def test_resource_prompt_bounds_pass_validation(mcp_client: McpClient, resource_id: int) -> None:
    # 유효한 ID는 검증을 통과하고 다음 단계인 초기화 확인에서 멈춰요.
    with pytest.raises(NotInitializedError):
        await EverythingPrompts(mcp_client).get_resource_prompt(resource_id)


@pytest.mark.asyncio
async def test_resource_prompt_embeds_resource(
    initialized_client: McpClient,
    everything_server: MockEverythingServer,
) -> None:
    result = await EverythingPrompts(initialized_client).get_resource_prompt(1)

    assert everything_server.posted_bodies[-1]["params"] == {"name": "resource_prompt", "arguments": {"resourceId": "1"}}
    assert result.has_content_type("resource")
    embedded = result.messages[1].content
    assert isinstance(embedded, McpEmbeddedResource)
    assert embedded.resource.uri == "test://static/resource/1"


@pytest.mark.asyncio
async def test_simple_and_complex_prompts(
    initialized_client: McpClient,
    everything_server: MockEverythingServer,
) -> None:
    prompts = EverythingPrompts(initialized_client)

    simple = await prompts.simple()
    assert simple.texts() == ["This is a simple prompt without arguments."]

    await prompts.complex("0.5")
    assert everything_server.posted_bodies[-1]["params"]["arguments"] == {"temperature": "0.5", "style": ""}
    with pytest.raises(InvalidArgumentError):
        await prompts.complex("")


@pytest.mark.asyncio
@pytest.mark.parametrize("server_options", [{"add_text_template": "{a} + {b} = {total}"}])
async def test_add_handles_equation_format(initialized_client: McpClient) -> None:
    assert await EverythingTools(initialized_client).add(20, 22) == 42


@pytest.mark.asyncio
@pytest.mark.parametrize("server_options", [{"add_text_template": "Computation finished."}])
async def test_add_raises_when_text_has_no_result(initialized_client: McpClient) -> None:
    with pytest.raises(UnparsableResultError):
        await EverythingTools(initialized_client).add(2, 3)


@pytest.mark.asyncio
async def test_everything_tool_helpers(initialized_client: McpClient) -> None:
    tools = EverythingTools(initialized_client)

    assert await tools.echo("Hello from post.sh!") == "Hello from post.sh!"
    assert "PATH" in await tools.print_env()

    image = await tools.get_tiny_image()
    assert isinstance(image, McpImageContent)
    assert image.mime_type == "image/png"

    reference = await tools.get_resource_reference(2)
    assert isinstance(reference, McpEmbeddedResource)
    assert reference.resource.uri == "test://static/resource/2"
    assert reference.resource.blob is not None

    links = await tools.get_resource_links(4)
    assert len(links) == 4

    structured = await tools.structured_content("Seoul")
    assert structured.structured_content is not None

    with pytest.raises(InvalidArgumentError):
        await tools.get_resource_reference(101)
    with pytest.raises(InvalidArgumentError):
        await tools.annotated_message("shout")
    with pytest.raises(InvalidArgumentError):
        await tools.long_running_operation(5, 0)


@pytest.mark.asyncio
async def test_tiny_image_content_is_second_item(initialized_client: McpClient) -> None:
    result = await initialized_client.call_tool("getTinyImage", {})
    assert isinstance(result.content[0], McpTextContent)
    assert isinstance(result.content[1], McpImageContent)


def test_first_of_type_skips_leading_text_and_rejects_missing_content() -> None:
    image = McpImageContent(data="iVBORw0KGgo=", mime_type="image/png")
    result = McpCallToolResult(content=(McpTextContent(text="This is a tiny image:"), image), is_error=False)
    assert first_of_type(result, McpImageContent, "getTinyImage") is image

    text_only = McpCallToolResult(content=(McpTextContent(text="no image today"),), is_error=False)
    with pytest.raises(UnparsableResultError, match="text"):
        first_of_type(text_only, McpImageContent, "getTinyImage")


@pytest.mark.asyncio
async def test_validate_core_tools(initialized_client: McpClient) -> None:
    tools = EverythingTools(initialized_client)

    available = await tools.validate_core_tools()
    assert {"echo", "add", "printEnv", "longRunningOperation"} <= available

    with pytest.raises(ValidationError, match="sampleLLM"):
        await tools.validate_core_tools({"echo", "sampleLLM"})


@pytest.mark.asyncio
async def test_everything_resources_helpers(initialized_client: McpClient) -> None:
    resources = EverythingResources(initialized_client)

    stats = await resources.resource_stats()
    assert stats.total_resources == 3
    assert stats.text_contents == 2
    assert stats.blob_contents == 1

    assert [resource.uri for resource in resources.find_by_name("resource 2")] == ["test://static/resource/2"]
    assert await resources.resource_text("test://static/resource/1") == "Resource 1: This is a plaintext resource"
    assert await resources.resource_blob("test://static/resource/2") == "UmVzb3VyY2UgYmxvYg=="

    with pytest.raises(ValidationError):
        await resources.resource_blob("test://static/resource/3")
    with pytest.raises(NotFoundError):
        await resources.read("test://static/resource/99")
