from tagchat.config import Config
from tagchat.main import build_session
from tagchat.prompts import DEFAULT_SYSTEM_PROMPT, load_system_prompt


def test_missing_file_uses_default(tmp_path):
    assert load_system_prompt(tmp_path / "nope.md") == (DEFAULT_SYSTEM_PROMPT, None)
    assert load_system_prompt(None) == (DEFAULT_SYSTEM_PROMPT, None)


def test_file_is_loaded(tmp_path):
    path = tmp_path / "system.md"
    path.write_text("Be brief.", encoding="utf-8")
    assert load_system_prompt(path) == ("Be brief.", path)


def test_default_prompt_names_every_tool():
    for name in ("run_in_terminal", "get_terminal_output", "list_dir", "file_search",
                 "grep_search", "read_file", "create_file", "replace_string_in_file"):
        assert name in DEFAULT_SYSTEM_PROMPT


def test_build_session_uses_project_system_prompt(tmp_path):
    (tmp_path / "docs").mkdir()
    (tmp_path / "docs" / "system.md").write_text("Custom rules.", encoding="utf-8")
    config = Config(project_root=str(tmp_path))

    session, processes = build_session(config)
    try:
        assert session.conversation[0] == {"role": "system", "content": "Custom rules."}
        assert len(processes) == 0
    finally:
        processes.shutdown()
