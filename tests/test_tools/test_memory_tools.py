import json

import pytest

from conftest import ScriptedIO
from nivuus_agent.memory import AgentMemory
from nivuus_agent.tools.ask_user import AskUserTool
from nivuus_agent.tools.memory_tools import GetMemoryKeysTool, GetMemoryValueTool, SetMemoryValueTool


@pytest.mark.asyncio
async def test_set_then_get_value_round_trips_through_json(make_context):
    context = make_context()

    set_result = await SetMemoryValueTool().execute(context, path="projects.api", value={"port": 8080})
    get_result = await GetMemoryValueTool().execute(context, path="projects.api.port")
    keys_result = await GetMemoryKeysTool().execute(context)

    assert set_result.content == "Memory updated at path: projects.api"
    assert json.loads(get_result.content) == 8080
    assert json.loads(keys_result.content) == ["system_info", "action_log", "notes", "projects"]


@pytest.mark.asyncio
async def test_missing_value_reports_path_not_found(make_context):
    result = await GetMemoryValueTool().execute(make_context(), path="system_info.gpu")

    assert result.success is False
    assert result.payload == "Error: Path not found in memory: system_info.gpu"


@pytest.mark.asyncio
async def test_memory_tools_surface_path_errors_as_failures(make_context):
    context = make_context(memory=AgentMemory(notes="plain text"))

    keys_result = await GetMemoryKeysTool().execute(context, path="notes")
    set_result = await SetMemoryValueTool().execute(context, path="action_log", value=[])

    assert keys_result.success is False
    assert "not an object" in keys_result.error
    assert set_result.success is False
    assert "append-only" in set_result.error


@pytest.mark.asyncio
async def test_ask_user_returns_the_operators_answer(make_context):
    io = ScriptedIO(answers=["use port 8443"])

    result = await AskUserTool().execute(make_context(io=io), question="Which port?")

    assert AskUserTool.interactive is True
    assert io.questions == ["Which port?"]
    assert result.content == "use port 8443"
