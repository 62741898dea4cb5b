from pathlib import Path

import pytest

from nivuus_agent.instructions import AUTO_CONTINUE, RESUME, InstructionLoader


def test_packaged_templates_are_available(tmp_path: Path):
    loader = InstructionLoader(personal_dir=tmp_path)

    assert loader.auto_continue() == "Continue."
    assert loader.proactive_discovery()
    assert loader.resume()
    assert not loader.is_overridden(AUTO_CONTINUE)


def test_system_prompt_lists_tool_names(tmp_path: Path):
    loader = InstructionLoader(personal_dir=tmp_path)

    prompt = loader.system_prompt(["read_file", "ask_user"])

    assert "read_file, ask_user" in prompt
    assert "{tool_names}" not in prompt


def test_memory_reminder_wraps_summary(tmp_path: Path):
    loader = InstructionLoader(personal_dir=tmp_path)

    reminder = loader.memory_reminder("--- Agent memory summary ---\nos: Debian")

    assert reminder.endswith("--- Agent memory summary ---\nos: Debian")


def test_personal_override_takes_precedence(tmp_path: Path):
    (tmp_path / RESUME).write_text("Pick up where we stopped.\n", encoding="utf-8")
    loader = InstructionLoader(personal_dir=tmp_path)

    assert loader.is_overridden(RESUME)
    assert loader.resume() == "Pick up where we stopped."


def test_unknown_placeholders_are_left_in_place(tmp_path: Path):
    base = tmp_path / "base"
    base.mkdir()
    (base / "custom.md").write_text("Hello {name}, see {unknown}.", encoding="utf-8")
    loader = InstructionLoader(base_dir=base, personal_dir=tmp_path / "personal")

    assert loader.render("custom.md", name="operator") == "Hello operator, see {unknown}."


def test_missing_template_raises(tmp_path: Path):
    loader = InstructionLoader(base_dir=tmp_path, personal_dir=tmp_path / "personal")

    with pytest.raises(FileNotFoundError):
        loader.auto_continue()
