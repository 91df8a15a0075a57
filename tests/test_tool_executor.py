import asyncio

import pytest

from agentflow.domain.exceptions import ToolArgumentError, ToolExecutionError
from agentflow.domain.models.workflow import Tool
from agentflow.domain.tool.tool_executor import ToolExecutor
from agentflow.domain.tool.tool_registry import ToolRegistry
from agentflow.domain.tool.tool_validator import ToolParameterValidator


@pytest.fixture
def executor():
    return ToolExecutor()


async def test_arguments_bound_by_name(executor):
    def subtract(a, b):
        return a - b

    tool = Tool(name="subtract", implementation=subtract)

    assert await executor.execute_tool(tool, {"b": 1, "a": 5}) == 4


async def test_unknown_keys_fall_back_to_positional(executor):
    def subtract(x, y):
        return x - y

    tool = Tool(name="subtract", implementation=subtract)

    assert ToolExecutor.bind_arguments(tool, {"first": 5, "second": 1}) == ((5, 1), {})
    assert await executor.execute_tool(tool, {"first": 5, "second": 1}) == 4


async def test_positional_values_follow_declared_schema_order(executor):
    def subtract(x, y):
        return x - y

    tool = Tool(
        name="subtract",
        parameters={
            "type": "object",
            "properties": {"minuend": {"type": "number"}, "subtrahend": {"type": "number"}},
        },
        implementation=subtract,
    )
    arguments = {"subtrahend": 1, "note": "ignored", "minuend": 5}

    assert ToolParameterValidator.declared_parameters(tool) == ["minuend", "subtrahend"]
    assert ToolExecutor.bind_arguments(tool, arguments) == ((5, 1, "ignored"), {})

    assert await executor.execute_tool(tool, {"subtrahend": 1, "minuend": 5}) == 4


async def test_var_kwargs_receive_everything(executor):
    def echo(**kwargs):
        return kwargs

    tool = Tool(name="echo", implementation=echo)

    assert await executor.execute_tool(tool, {"anything": 1}) == {"anything": 1}


async def test_async_implementation(executor):
    async def fetch(key):
        await asyncio.sleep(0)
        return {"key": key}

    tool = Tool(name="fetch", implementation=fetch)

    assert await executor.execute_tool(tool, {"key": "k"}) == {"key": "k"}


async def test_missing_implementation(executor):
    with pytest.raises(ToolExecutionError, match="Tool implementation not found"):
        await executor.execute_tool(Tool(name="ghost"), {})


async def test_implementation_error_is_wrapped(executor):
    def explode():
        raise KeyError("gone")

    with pytest.raises(ToolExecutionError) as exc_info:
        await executor.execute_tool(Tool(name="explode", implementation=explode), {})

    assert exc_info.value.tool_name == "explode"
    assert isinstance(exc_info.value.original, KeyError)


async def test_timeout():
    async def slow():
        await asyncio.sleep(1)

    with pytest.raises(ToolExecutionError, match="timeout"):
        await ToolExecutor(timeout_seconds=0.01).execute_tool(Tool(name="slow", implementation=slow), {})


async def test_missing_required_argument(executor, add_tool):
    with pytest.raises(ToolArgumentError) as exc_info:
        await executor.execute_tool(add_tool, {"a": 1})

    assert exc_info.value.details == {"missing": ["b"]}


async def test_strict_schema_validation(executor, add_tool):
    strict_add = add_tool.model_copy(update={"strict": True})

    with pytest.raises(ToolArgumentError, match="schema validation failed"):
        await executor.execute_tool(strict_add, {"a": "one", "b": 2})

    assert await executor.execute_tool(strict_add, {"a": 1, "b": 2}) == 3


def test_registry_resolves_known_names(add_tool):
    registry = ToolRegistry([add_tool, Tool(name="search", category="web")])

    assert [t.name for t in registry.resolve(["search", "nope", "add"])] == ["search", "add"]
    assert [t.name for t in registry.get_tools_by_category("web")] == ["search"]
    assert "add" in registry
    assert len(registry) == 2


def test_registry_replaces_tool_with_same_name(add_tool):
    registry = ToolRegistry([add_tool])

    registry.register_tool(Tool(name="add", description="Replacement", category="math"))

    assert registry.get_tool("add").description == "Replacement"
    assert registry.get_tools_by_category("general") == []
    assert len(registry) == 1


def test_tool_schema_excludes_implementation(add_tool):
    schema = add_tool.to_schema()

    assert schema["function"]["name"] == "add"
    assert schema["function"]["parameters"]["required"] == ["a", "b"]
    assert "implementation" not in add_tool.model_dump()
