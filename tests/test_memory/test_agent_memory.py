import dataclasses

import pytest

from nivuus_agent.exceptions import MemoryPathError
from nivuus_agent.memory import (
    NOT_FOUND,
    ActionStatus,
    AgentMemory,
    render_memory_summary,
    split_memory_path,
)


def test_action_log_evicts_oldest_entries_beyond_capacity():
    memory = AgentMemory(max_action_log_entries=3)

    for index in range(5):
        memory.log_action("Tool: read_file", f"target-{index}", ActionStatus.SUCCESS)

    targets = [entry.target for entry in memory.action_log]
    assert targets == ["target-2", "target-3", "target-4"]
    assert memory.capacity == 3


def test_action_log_entries_are_immutable():
    memory = AgentMemory()
    entry = memory.log_action("API Response", "gpt-4.1", ActionStatus.SUCCESS)

    with pytest.raises(dataclasses.FrozenInstanceError):
        entry.status = ActionStatus.FAILURE  # type: ignore[misc]
    assert entry.timestamp.endswith("+00:00")


def test_split_memory_path_handles_dots_and_indexes():
    assert split_memory_path("projects.web[1].url") == ["projects", "web", "1", "url"]
    assert split_memory_path("") == []
    assert split_memory_path(None) == []


def test_get_keys_on_root_missing_path_and_scalar():
    memory = AgentMemory(system_info={"os": "Debian"}, notes="remember backups")

    assert memory.get_keys() == ["system_info", "action_log", "notes"]
    assert memory.get_keys("system_info") == ["os"]
    assert memory.get_keys("does.not.exist") == []
    with pytest.raises(MemoryPathError):
        memory.get_keys("notes")


def test_get_value_returns_not_found_sentinel_for_missing_paths():
    memory = AgentMemory(system_info={"os": "Debian"})

    assert memory.get_value("system_info.os") == "Debian"
    assert memory.get_value("system_info.kernel") is NOT_FOUND
    assert memory.get_value("nothing.here[3]") is NOT_FOUND
    assert not NOT_FOUND


def test_set_value_creates_intermediate_objects_and_supports_list_indexes():
    memory = AgentMemory()

    memory.set_value("projects.web.urls", ["https://a.example", "https://b.example"])
    memory.set_value("projects.web.owner", "ops")
    memory.set_value("projects.web.urls[1]", "https://c.example")

    assert memory.get_value("projects") == {
        "web": {"urls": ["https://a.example", "https://c.example"], "owner": "ops"}
    }
    assert memory.get_value("projects.web.urls.0") == "https://a.example"
    assert memory.get_keys("projects.web.urls") == ["0", "1"]
    assert not memory.is_empty()


def test_get_value_returns_a_copy():
    memory = AgentMemory()
    memory.set_value("prefs", {"editor": "vim"})

    value = memory.get_value("prefs")
    value["editor"] = "emacs"

    assert memory.get_value("prefs.editor") == "vim"


def test_set_value_keeps_reserved_sections_well_formed():
    memory = AgentMemory()

    memory.set_value("system_info.os", "Debian 12")
    memory.set_value("system_info.cores", 8)
    memory.set_value("notes", "prefers short answers")

    assert memory.system_info == {"os": "Debian 12", "cores": "8"}
    assert memory.notes == "prefers short answers"
    with pytest.raises(MemoryPathError):
        memory.set_value("action_log", [])
    with pytest.raises(MemoryPathError):
        memory.set_value("system_info.cpu.model", "x")
    with pytest.raises(MemoryPathError):
        memory.set_value("", "x")


def test_update_system_info_from_text_records_only_changes():
    memory = AgentMemory(system_info={"os": "Debian 12"})
    reply = "Discovery done.\nos: Debian 12\n  kernel_version : 6.1.0-18\nNot a fact line\nram.total: 16Gi"

    updated = memory.update_system_info_from_text(reply)

    assert updated == {"kernel_version": "6.1.0-18", "ram.total": "16Gi"}
    assert memory.system_info["kernel_version"] == "6.1.0-18"
    assert memory.update_system_info_from_text(reply) == {}


def test_is_empty_covers_every_section():
    assert AgentMemory().is_empty()
    assert not AgentMemory(notes="x").is_empty()
    assert not AgentMemory(extra={"k": 1}).is_empty()

    memory = AgentMemory()
    memory.log_action("API Response", "gpt-4.1", ActionStatus.SUCCESS)
    assert not memory.is_empty()


def test_from_dict_skips_malformed_entries_and_applies_capacity():
    entries = [
        {"timestamp": f"2026-01-01T00:00:{i:02d}+00:00", "actionType": "Tool: x", "target": str(i), "status": "Success"}
        for i in range(40)
    ]
    entries.append({"actionType": "Tool: y", "target": "bad", "status": "Bogus"})
    entries.append("not an entry")

    memory = AgentMemory.from_dict(
        {"system_info": {"os": "Arch"}, "action_log": entries, "notes": "n", "projects": {"a": 1}},
        max_action_log_entries=30,
    )

    assert len(memory.action_log) == 30
    assert memory.action_log[0].target == "10"
    assert memory.extra == {"projects": {"a": 1}}

    data = memory.to_dict()
    assert data["action_log"][-1] == {
        "timestamp": "2026-01-01T00:00:39+00:00",
        "actionType": "Tool: x",
        "target": "39",
        "status": "Success",
    }
    assert data["projects"] == {"a": 1}


def test_render_memory_summary_limits_recent_actions():
    memory = AgentMemory(system_info={"os": "Debian"}, notes="be brief")
    for index in range(6):
        memory.log_action("Tool: run_bash_command", f"cmd-{index}", ActionStatus.SUCCESS)
    memory.log_action("System", "Unexpected loop error", ActionStatus.FAILURE, "boom")

    summary = render_memory_summary(memory, max_entries=5)

    assert summary.startswith("--- Agent memory summary ---")
    assert 'System info: {"os": "Debian"}' in summary
    assert "Notes: be brief" in summary
    assert "Recent actions (5 of 7):" in summary
    assert "cmd-1" not in summary
    assert "System Failure: Unexpected loop error (Err: boom...)" in summary
    assert summary.endswith("--- End of memory summary ---")
