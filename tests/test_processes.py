import threading
import time
from unittest.mock import patch

import pytest

from tagchat.errors import ProcessNotFoundError
from tagchat.tools.processes import ProcessRegistry


@pytest.fixture
def registry(tmp_path):
    reg = ProcessRegistry(str(tmp_path))
    yield reg
    reg.shutdown()


def test_start_returns_sequential_ids(registry):
    ids = [registry.start("true", "noop") for _ in range(3)]
    assert ids == [1, 2, 3]


def test_ids_are_unique_under_concurrent_starts(registry):
    ids = []
    lock = threading.Lock()

    def worker():
        pid = registry.start("true")
        with lock:
            ids.append(pid)

    threads = [threading.Thread(target=worker) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert sorted(ids) == list(range(1, 11))


def test_running_then_completed(registry):
    pid = registry.start("sleep 0.5", "wait")
    assert pid == 1

    text = registry.poll(pid)
    assert text.startswith("Process 1 [Running]:")
    assert "Command: sleep 0.5" in text
    assert text.endswith("Output:\n(no output yet)")

    assert registry.get(pid).wait(timeout=10)
    text = registry.poll(pid)
    assert text.startswith("Process 1 [Completed (exit code: 0)]:")


def test_output_is_captured(registry):
    pid = registry.start("echo out; echo err 1>&2; exit 3")
    record = registry.get(pid)
    assert record.wait(timeout=10)
    assert record.stdout == "out\n"
    assert record.stderr == "err\n"
    assert record.exit_code == 3
    assert record.end_time is not None
    assert "out\n\nSTDERR:\nerr\n" in registry.poll(pid)


def _wait_for_output(record, text, timeout=5.0):
    deadline = time.time() + timeout
    while text not in record.stdout and time.time() < deadline:
        time.sleep(0.05)


def test_partial_line_is_visible_while_running(registry):
    pid = registry.start("printf 'Server ready'; sleep 3")
    _wait_for_output(registry.get(pid), "Server ready")

    text = registry.poll(pid)
    assert text.startswith("Process 1 [Running]:")
    assert text.endswith("Output:\nServer ready")


def test_multibyte_character_split_across_reads(registry):
    pid = registry.start("printf '\\xc3'; sleep 0.3; printf '\\xa9'")
    record = registry.get(pid)
    assert record.wait(timeout=10)
    assert record.stdout == "\u00e9"


def test_poll_accepts_numeric_strings(registry):
    pid = registry.start("true")
    assert registry.poll(str(pid)).startswith(f"Process {pid} [")


@pytest.mark.parametrize("bad_id", [99, "99", "abc", None])
def test_poll_unknown_id(registry, bad_id):
    with pytest.raises(ProcessNotFoundError) as exc:
        registry.poll(bad_id)
    assert str(exc.value) == f"No process found with ID: {bad_id}"


def test_spawn_failure_is_recorded_not_raised(registry):
    with patch("tagchat.tools.processes.subprocess.Popen",
               side_effect=FileNotFoundError("bash not found")):
        pid = registry.start("anything")
    record = registry.get(pid)
    assert not record.is_running
    assert record.error == "bash not found"
    assert "Failed to start" in registry.poll(pid)
    # The failed id is not reused.
    assert registry.start("true") == pid + 1


def test_dispose_and_prune(registry):
    done = registry.start("true")
    running = registry.start("sleep 5")
    assert registry.get(done).wait(timeout=10)

    with pytest.raises(ValueError):
        registry.dispose(running)

    assert registry.prune() == 1
    assert [r.id for r in registry.list()] == [running]
    with pytest.raises(ProcessNotFoundError):
        registry.poll(done)

    # Ids keep increasing after disposal.
    assert registry.start("true") == 3


def test_dispose_finished_record(registry):
    pid = registry.start("true")
    registry.get(pid).wait(timeout=10)
    registry.dispose(pid)
    assert len(registry) == 0


def test_shutdown_terminates_running_processes(registry):
    pid = registry.start("sleep 30")
    registry.shutdown()
    assert registry.get(pid).wait(timeout=10)
    assert registry.get(pid).exit_code != 0


def test_run_foreground_leaves_no_record(registry):
    assert registry.run_foreground("echo hi") == "hi\n"
    assert registry.list() == []
