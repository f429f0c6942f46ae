import subprocess
from unittest.mock import patch

from tagchat.tools.shell import ShellExecutor, combine_output, truncate_output


def test_stdout_is_returned(tmp_path):
    executor = ShellExecutor(project_root=str(tmp_path))

    assert executor.run("echo hi") == "hi\n"


def test_runs_in_project_root(tmp_path):
    (tmp_path / "sample.txt").write_text("content", encoding="utf-8")
    executor = ShellExecutor(project_root=str(tmp_path))

    assert "sample.txt" in executor.run("ls")


def test_stderr_section(tmp_path):
    executor = ShellExecutor(project_root=str(tmp_path))

    result = executor.run("echo out; echo oops 1>&2")

    assert result == "out\n\nSTDERR:\noops\n"


def test_empty_output_reports_exit_code(tmp_path):
    executor = ShellExecutor(project_root=str(tmp_path))

    assert executor.run("exit 4") == "Process completed with exit code: 4"
    assert executor.run("true") == "Process completed with exit code: 0"


def test_spawn_failure_becomes_text(tmp_path):
    executor = ShellExecutor(project_root=str(tmp_path))

    with patch("tagchat.tools.shell.subprocess.run",
               side_effect=FileNotFoundError("No such file or directory: 'bash'")):
        result = executor.run("echo hi")

    assert result == "Error executing command: No such file or directory: 'bash'"


def test_timeout_handling(tmp_path):
    executor = ShellExecutor(project_root=str(tmp_path), timeout=1)

    with patch(
        "tagchat.tools.shell.subprocess.run",
        side_effect=subprocess.TimeoutExpired(cmd="bash -c sleep 5", timeout=1),
    ):
        result = executor.run("sleep 5")

    assert result == "Error executing command: timed out after 1s"


def test_zero_timeout_means_no_timeout(tmp_path):
    assert ShellExecutor(project_root=str(tmp_path), timeout=0).timeout is None


def test_long_output_is_truncated(tmp_path):
    executor = ShellExecutor(project_root=str(tmp_path), max_output_chars=100)

    result = executor.run("seq 1 1000")

    assert "...(truncated)..." in result
    assert result.startswith("1\n2\n")
    assert result.endswith("1000\n")


def test_truncate_output_keeps_short_text():
    assert truncate_output("short", 100) == "short"
    assert truncate_output("x" * 10, 0) == "x" * 10


def test_combine_output():
    assert combine_output("a", "") == "a"
    assert combine_output("", "b") == "\nSTDERR:\nb"
