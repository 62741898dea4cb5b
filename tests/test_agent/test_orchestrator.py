import json
from typing import Any, Sequence

import pytest

from conftest import ScriptedIO
from nivuus_agent.agent import TurnOrchestrator, TurnState, is_quit
from nivuus_agent.conversation import SystemTurn, ToolCallRequest, Turn, UserTurn
from nivuus_agent.exceptions import LLMAPIError
from nivuus_agent.instructions import InstructionLoader
from nivuus_agent.llm import LLMProvider, LLMResponse
from nivuus_agent.memory import ActionStatus, AgentMemory
from nivuus_agent.tools.ask_user import AskUserTool
from nivuus_agent.tools.memory_tools import GetMemoryKeysTool
from nivuus_agent.tools.registry import ToolRegistry


class _ScriptedProvider(LLMProvider):
    model = "scripted-model"

    def __init__(self, script: list[LLMResponse | Exception]):
        self.script = list(script)
        self.calls: list[list[Turn]] = []

    async def complete(self, turns: Sequence[Turn], tools: list[dict[str, Any]] | None = None) -> LLMResponse:
        self.calls.append(list(turns))
        step = self.script.pop(0)
        if isinstance(step, Exception):
            raise step
        return step


class _RecordingGuard:
    def __init__(self) -> None:
        self.reasons: list[str] = []

    def flush(self, reason: str) -> bool:
        self.reasons.append(reason)
        return True


_counter = 0


def _tool_call(name: str, **arguments: Any) -> LLMResponse:
    global _counter
    _counter += 1
    return LLMResponse(
        content=None,
        tool_calls=[ToolCallRequest(id=f"call_{_counter}", name=name, arguments=json.dumps(arguments))],
    )


def _ask(question: str = "Anything else?") -> LLMResponse:
    return _tool_call("ask_user", question=question)


def _text(content: str) -> LLMResponse:
    return LLMResponse(content=content)


def _orchestrator(context, script, guard=None, personal_dir=None):
    registry = ToolRegistry()
    registry.register(AskUserTool())
    registry.register(GetMemoryKeysTool())
    provider = _ScriptedProvider(script)
    instructions = InstructionLoader(personal_dir=personal_dir)
    return TurnOrchestrator(context, provider, registry, instructions, guard=guard), provider, instructions


def _user_contents(context) -> list[str]:
    return [turn.content for turn in context.history if isinstance(turn, UserTurn)]


@pytest.fixture
def no_overrides(tmp_path):
    return tmp_path / "no-personal-overrides"


def test_is_quit_ignores_case_and_whitespace():
    assert is_quit("  QUIT \n")
    assert not is_quit("quit now")


@pytest.mark.asyncio
async def test_first_run_with_empty_memory_sends_proactive_discovery(make_context, no_overrides):
    context = make_context(io=ScriptedIO(answers=["quit"]))
    orchestrator, provider, instructions = _orchestrator(context, [_ask()], personal_dir=no_overrides)

    exit_code = await orchestrator.run()

    assert exit_code == 0
    assert orchestrator.state is TurnState.TERMINATED
    assert _user_contents(context) == [instructions.proactive_discovery()]
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_first_run_with_existing_state_sends_resume(make_context, no_overrides):
    memory = AgentMemory(system_info={"os": "Debian"})
    context = make_context(io=ScriptedIO(answers=["quit"]), memory=memory)
    orchestrator, _, instructions = _orchestrator(context, [_ask()], personal_dir=no_overrides)

    await orchestrator.run()

    assert _user_contents(context) == [instructions.resume()]


@pytest.mark.asyncio
async def test_answer_becomes_next_user_turn_without_follow_up_completion(make_context, no_overrides):
    io = ScriptedIO(answers=["yes please", " Quit "])
    context = make_context(io=io)
    orchestrator, provider, instructions = _orchestrator(
        context,
        [_ask("Shall I continue?"), _text("Done."), _ask()],
        personal_dir=no_overrides,
    )

    exit_code = await orchestrator.run()

    assert exit_code == 0
    assert len(provider.calls) == 3
    assert _user_contents(context) == [
        instructions.proactive_discovery(),
        "yes please",
        instructions.auto_continue(),
    ]
    assert io.assistant == ["Done."]
    assert " Quit " not in _user_contents(context)


@pytest.mark.asyncio
async def test_quit_path_flushes_through_the_guard(make_context, no_overrides):
    guard = _RecordingGuard()
    context = make_context(io=ScriptedIO(answers=["quit"]))
    orchestrator, _, _ = _orchestrator(context, [_ask()], guard=guard, personal_dir=no_overrides)

    await orchestrator.run()

    assert guard.reasons == ["quit"]


@pytest.mark.asyncio
async def test_memory_reminder_is_projected_but_never_stored(make_context, no_overrides):
    memory = AgentMemory(system_info={"os": "Debian"})
    context = make_context(io=ScriptedIO(answers=["quit"]), memory=memory)
    orchestrator, provider, _ = _orchestrator(context, [_ask()], personal_dir=no_overrides)

    await orchestrator.run()

    projection = provider.calls[0]
    assert isinstance(projection[0], SystemTurn)
    assert isinstance(projection[1], UserTurn)
    assert "--- Agent memory summary ---" in projection[1].content
    assert '"os": "Debian"' in projection[1].content
    assert all("--- Agent memory summary ---" not in str(turn.content) for turn in context.history)


@pytest.mark.asyncio
async def test_empty_memory_sends_raw_history(make_context, no_overrides):
    context = make_context(io=ScriptedIO(answers=["quit"]))
    orchestrator, _, _ = _orchestrator(context, [_ask()], personal_dir=no_overrides)

    projection = orchestrator.build_projection()

    assert projection == context.history.turns


@pytest.mark.asyncio
async def test_free_text_reply_updates_system_info(make_context, no_overrides):
    context = make_context(io=ScriptedIO(answers=["quit"]))
    orchestrator, _, _ = _orchestrator(
        context,
        [_text("Summary:\nos: Debian 12\nshell: bash"), _ask()],
        personal_dir=no_overrides,
    )

    await orchestrator.run()

    assert context.memory.system_info == {"os": "Debian 12", "shell": "bash"}
    response_entries = [e for e in context.memory.action_log if e.action_type == "API Response"]
    assert len(response_entries) == 1
    assert response_entries[0].target == "scripted-model"


@pytest.mark.asyncio
async def test_auth_error_is_fatal_after_one_log_entry(make_context, no_overrides):
    guard = _RecordingGuard()
    io = ScriptedIO()
    context = make_context(io=io)
    orchestrator, provider, _ = _orchestrator(
        context,
        [LLMAPIError("Incorrect API key", status_code=401), _ask()],
        guard=guard,
        personal_dir=no_overrides,
    )

    exit_code = await orchestrator.run()

    assert exit_code == 1
    assert len(provider.calls) == 1
    assert len(context.memory.action_log) == 1
    entry = context.memory.action_log[0]
    assert (entry.status, entry.target) == (ActionStatus.FAILURE, "Completion API error: 401")
    assert guard.reasons == ["fatal error"]
    assert "AuthError" in io.errors[0]


@pytest.mark.asyncio
async def test_recoverable_error_truncates_and_auto_continues(make_context, no_overrides):
    io = ScriptedIO(answers=["first answer", "quit"])
    context = make_context(io=io)
    orchestrator, provider, instructions = _orchestrator(
        context,
        [_ask(), RuntimeError("socket hiccup"), LLMAPIError("slow down", status_code=429), _ask()],
        personal_dir=no_overrides,
    )

    exit_code = await orchestrator.run()

    assert exit_code == 0
    assert len(provider.calls) == 4
    # The failed "first answer" turn was rewound; so was the auto-continue that hit the rate limit.
    assert _user_contents(context) == [instructions.proactive_discovery(), instructions.auto_continue()]
    failures = [e for e in context.memory.action_log if e.status is ActionStatus.FAILURE]
    assert [e.target for e in failures] == ["Unexpected loop error", "Completion API error: 429"]
    assert len(io.errors) == 2


@pytest.mark.asyncio
async def test_error_on_first_turn_resets_to_the_system_turn(make_context, no_overrides):
    context = make_context(io=ScriptedIO(answers=["quit"]))
    orchestrator, provider, instructions = _orchestrator(
        context,
        [RuntimeError("boom"), _ask()],
        personal_dir=no_overrides,
    )

    await orchestrator.run()

    assert _user_contents(context) == [instructions.auto_continue()]
    retried = [turn.content for turn in provider.calls[1]]
    assert instructions.proactive_discovery() not in retried
    assert retried[-1] == instructions.auto_continue()


@pytest.mark.asyncio
async def test_tool_rounds_are_capped(make_context, no_overrides):
    io = ScriptedIO(answers=["quit"])
    context = make_context(io=io)
    context.config.agent.max_tool_rounds = 2
    orchestrator, provider, _ = _orchestrator(
        context,
        [_tool_call("get_memory_keys"), _tool_call("get_memory_keys"), _ask()],
        personal_dir=no_overrides,
    )

    await orchestrator.run()

    assert len(provider.calls) == 3
    assert len(io.warnings) == 1
    decisions = [e for e in context.memory.action_log if e.action_type == "Tool Call Decision"]
    assert len(decisions) == 3


@pytest.mark.asyncio
async def test_every_tool_call_is_answered_before_the_next_completion(make_context, no_overrides):
    context = make_context(io=ScriptedIO(answers=["quit"]))
    orchestrator, provider, _ = _orchestrator(
        context,
        [_tool_call("get_memory_keys"), _text("nothing stored"), _ask()],
        personal_dir=no_overrides,
    )

    await orchestrator.run()

    second_projection = provider.calls[1]
    assert second_projection[-1].role == "tool"
    assert second_projection[-2].role == "assistant"
    assert second_projection[-1].tool_call_id == second_projection[-2].tool_calls[0].id
