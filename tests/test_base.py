"""
Tests for the tool framework: argument normalization, execution, descriptors
and the registry.
"""

import asyncio
from pathlib import Path
from typing import Dict

import pytest

from code_agent_tools.tools.base import (
    BaseTool,
    Safety,
    ToolConfig,
    ToolDescriptor,
    ToolError,
    ToolInput,
    ToolOutput,
    ToolRegistry,
    ToolStatus,
    normalize_text,
)


class GreetTool(BaseTool):
    """Two inputs, the second with a default."""

    inputs = {
        "name": ToolInput(type="string", description="Who to greet"),
        "greeting": ToolInput(type="string", description="Greeting word", default="Hello"),
    }

    def __init__(self, **config_overrides):
        super().__init__(ToolConfig(name="greet", description="Greets someone", **config_overrides))

    async def _execute(self, validated_input: Dict[str, str]) -> ToolOutput:
        return f"{validated_input['greeting']}, {validated_input['name']}!"


class FailingTool(BaseTool):
    inputs = {"value": ToolInput(type="string", description="Anything")}
    safety = Safety.UNSAFE

    def __init__(self, error: Exception):
        super().__init__(ToolConfig(name="failing", description="Always fails"))
        self.error = error

    async def _execute(self, validated_input: Dict[str, str]) -> ToolOutput:
        raise self.error


class SlowTool(BaseTool):
    inputs = {"value": ToolInput(type="string", description="Anything")}

    def __init__(self):
        super().__init__(ToolConfig(name="slow", description="Sleeps", timeout=1))

    async def _execute(self, validated_input: Dict[str, str]) -> ToolOutput:
        await asyncio.sleep(5)
        return "too late"


def test_normalize_text():
    assert normalize_text("plain") == "plain"
    assert normalize_text(b"caf\xc3\xa9") == "café"
    assert normalize_text(bytearray(b"abc")) == "abc"
    assert normalize_text(Path("/tmp/x.png")) == "/tmp/x.png"
    assert normalize_text(None) == ""
    assert normalize_text(42) == "42"


def test_positional_arguments_follow_input_order():
    assert GreetTool().normalize_arguments("Ada", "Hi") == {"name": "Ada", "greeting": "Hi"}


def test_keyword_and_mapping_arguments():
    tool = GreetTool()

    assert tool.normalize_arguments(name="Ada") == {"name": "Ada", "greeting": "Hello"}
    assert tool.normalize_arguments({"name": b"Ada", "greeting": "Hey"}) == {"name": "Ada", "greeting": "Hey"}


def test_empty_value_falls_back_to_default():
    assert GreetTool().normalize_arguments("Ada", "")["greeting"] == "Hello"


def test_argument_errors():
    tool = GreetTool()

    with pytest.raises(ToolError, match="missing required argument 'name'"):
        tool.normalize_arguments()
    with pytest.raises(ToolError, match="unexpected argument 'colour'"):
        tool.normalize_arguments("Ada", colour="red")
    with pytest.raises(ToolError, match="takes 2 argument"):
        tool.normalize_arguments("a", "b", "c")
    with pytest.raises(ToolError, match="multiple values"):
        tool.normalize_arguments("Ada", name="Bob")


@pytest.mark.asyncio
async def test_run_success():
    result = await GreetTool().run({"name": "Ada"})

    assert result.status == ToolStatus.SUCCESS
    assert result.content == "Hello, Ada!"
    assert result.error is None
    assert result.metadata["execution_count"] == 1


@pytest.mark.asyncio
async def test_run_accepts_bare_string_for_first_input():
    result = await GreetTool().run("Ada")
    assert result.content == "Hello, Ada!"


@pytest.mark.asyncio
async def test_tool_error_message_is_the_observation():
    result = await FailingTool(ToolError("Error: nope", "failing")).run("x")

    assert result.status == ToolStatus.ERROR
    assert result.error == "Error: nope"


@pytest.mark.asyncio
async def test_unexpected_exception_is_contained():
    result = await FailingTool(RuntimeError("boom")).run("x")

    assert result.status == ToolStatus.ERROR
    assert result.error == "Error: Unexpected RuntimeError: boom"
    assert result.metadata["error_type"] == "RuntimeError"


@pytest.mark.asyncio
async def test_timeout():
    result = await SlowTool().run("x")

    assert result.status == ToolStatus.TIMEOUT
    assert result.error == "Error: Tool execution timed out after 1s"


@pytest.mark.asyncio
async def test_disabled_tool():
    result = await GreetTool(enabled=False).run("Ada")

    assert result.status == ToolStatus.ERROR
    assert result.error == "Error: Tool is disabled"


@pytest.mark.asyncio
async def test_rate_limit():
    tool = GreetTool(rate_limit=1)

    first = await tool.run("Ada")
    second = await tool.run("Ada")

    assert first.status == ToolStatus.SUCCESS
    assert second.error == "Error: Rate limit exceeded"


def test_call_returns_content():
    tool = GreetTool()

    assert tool("Ada") == "Hello, Ada!"
    assert tool("Ada", greeting="Bonjour") == "Bonjour, Ada!"


def test_call_never_raises():
    assert FailingTool(RuntimeError("boom"))("x") == "Error: Unexpected RuntimeError: boom"
    assert GreetTool()().startswith("Error: missing required argument")


@pytest.mark.asyncio
async def test_call_inside_running_loop():
    assert GreetTool()("Ada") == "Hello, Ada!"


def test_descriptor():
    tool = GreetTool()

    descriptor = tool.as_descriptor()

    assert isinstance(descriptor, ToolDescriptor)
    assert descriptor.name == "greet"
    assert descriptor.description == "Greets someone"
    assert list(descriptor.inputs) == ["name", "greeting"]
    assert descriptor.inputs["greeting"].default == "Hello"
    assert descriptor.output_type == "string"
    assert descriptor.safety == Safety.SAFE
    assert descriptor.function("Ada") == "Hello, Ada!"


def test_get_info():
    info = FailingTool(RuntimeError("x")).get_info()

    assert info["name"] == "failing"
    assert info["safety"] == "unsafe"
    assert info["inputs"]["value"]["description"] == "Anything"


def test_registry():
    registry = ToolRegistry()
    greet = GreetTool()
    disabled = FailingTool(RuntimeError("x"))
    disabled.config.enabled = False

    registry.register_tool(greet)
    registry.register_tool(disabled)

    assert registry.list_tools() == ["greet", "failing"]
    assert registry.get_enabled_tools() == ["greet"]
    assert registry.get_tool("greet") is greet
    assert [d.name for d in registry.descriptors()] == ["greet"]
    assert [d.name for d in registry.descriptors(include_disabled=True)] == ["greet", "failing"]
    assert registry.get_tool_info("greet")["name"] == "greet"

    assert registry.unregister_tool("greet")
    assert not registry.unregister_tool("greet")
    assert registry.get_tool("greet") is None


@pytest.mark.asyncio
async def test_registry_lifecycle():
    registry = ToolRegistry()
    registry.register_tool(GreetTool())

    assert await registry.initialize_all() == {"greet": True}
    assert await registry.cleanup_all() == {"greet": True}
