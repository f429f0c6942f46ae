"""Background process registry.

Detached commands get a positive, monotonically increasing id that is never
reused. Reader threads append output chunks to the record as they arrive, so a
partial line such as a prompt is visible before its newline. A waiter thread
records the exit code once both streams are drained. Records are kept until
disposed explicitly.
"""

import codecs
import os
import subprocess
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Dict, List, Optional

from ..errors import ProcessNotFoundError
from ..logger import get_logger
from .shell import ShellExecutor, combine_output, shell_argv, shell_env

_log = get_logger(__name__)

_TERMINATE_GRACE = 2.0
_READ_SIZE = 4096


@dataclass
class BackgroundProcess:
    id: int
    command: str
    explanation: str = ""
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    exit_code: Optional[int] = None
    is_running: bool = True
    error: Optional[str] = None
    _stdout: List[str] = field(default_factory=list, repr=False)
    _stderr: List[str] = field(default_factory=list, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _done: threading.Event = field(default_factory=threading.Event, repr=False)
    _popen: Optional[subprocess.Popen] = field(default=None, repr=False)

    @property
    def stdout(self) -> str:
        with self._lock:
            return "".join(self._stdout)

    @property
    def stderr(self) -> str:
        with self._lock:
            return "".join(self._stderr)

    @property
    def status(self) -> str:
        if self.error is not None:
            return f"Failed to start: {self.error}"
        if self.is_running:
            return "Running"
        return f"Completed (exit code: {self.exit_code})"

    def append(self, text: str, stream: str = "stdout") -> None:
        with self._lock:
            (self._stdout if stream == "stdout" else self._stderr).append(text)

    def finish(self, exit_code: Optional[int], error: Optional[str] = None) -> None:
        with self._lock:
            self.exit_code = exit_code
            self.error = error
            self.end_time = time.time()
            self.is_running = False
        self._done.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the process has finished; False if ``timeout`` expired."""
        return self._done.wait(timeout)

    def snapshot(self) -> str:
        output = combine_output(self.stdout, self.stderr)
        return (
            f"Process {self.id} [{self.status}]:\n"
            f"Command: {self.command}\n\n"
            f"Output:\n{output or '(no output yet)'}"
        )


class ProcessRegistry:
    """Owns every detached process started during a session."""

    def __init__(self, project_root: str = ".", shell: Optional[ShellExecutor] = None):
        self.project_root = Path(project_root).resolve()
        self.shell = shell or ShellExecutor(str(self.project_root))
        self._records: Dict[int, BackgroundProcess] = {}
        self._next_id = 1
        self._id_lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def _allocate(self, command: str, explanation: str) -> BackgroundProcess:
        with self._id_lock:
            record = BackgroundProcess(id=self._next_id, command=command,
                                       explanation=explanation)
            self._next_id += 1
            self._records[record.id] = record
        return record

    def start(self, command: str, explanation: str = "") -> int:
        """Launch ``command`` detached and return its id without waiting.

        A launch failure is stored on the record instead of being raised.
        """
        record = self._allocate(command, explanation)
        try:
            proc = subprocess.Popen(
                shell_argv(command),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                bufsize=0,
                cwd=str(self.project_root),
                env=shell_env(),
            )
        except OSError as e:
            _log.warning("Background process %d failed to start: %s", record.id, e)
            record.append(str(e), "stderr")
            record.finish(None, error=str(e))
            return record.id

        record._popen = proc
        readers = [
            threading.Thread(target=self._pump, args=(proc.stdout, record, "stdout"),
                             daemon=True),
            threading.Thread(target=self._pump, args=(proc.stderr, record, "stderr"),
                             daemon=True),
        ]
        for reader in readers:
            reader.start()
        threading.Thread(target=self._reap, args=(proc, record, readers),
                         daemon=True).start()
        _log.debug("Started background process %d (pid %d): %s",
                   record.id, proc.pid, command[:100])
        return record.id

    @staticmethod
    def _pump(stream: IO[bytes], record: BackgroundProcess, name: str) -> None:
        # os.read returns whatever is available; multi-byte characters split
        # across chunks are held by the decoder.
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        fd = stream.fileno()
        with stream:
            while True:
                chunk = os.read(fd, _READ_SIZE)
                if not chunk:
                    break
                text = decoder.decode(chunk)
                if text:
                    record.append(text, name)
            tail = decoder.decode(b"", final=True)
            if tail:
                record.append(tail, name)

    @staticmethod
    def _reap(proc: subprocess.Popen, record: BackgroundProcess,
              readers: List[threading.Thread]) -> None:
        code = proc.wait()
        for reader in readers:
            reader.join()
        record.finish(code)
        _log.debug("Background process %d exited with code %s", record.id, code)

    def get(self, process_id) -> BackgroundProcess:
        """Look up a record by id; accepts ints or numeric strings."""
        try:
            key = int(str(process_id).strip())
        except (TypeError, ValueError):
            raise ProcessNotFoundError(process_id)
        record = self._records.get(key)
        if record is None:
            raise ProcessNotFoundError(process_id)
        return record

    def poll(self, process_id) -> str:
        return self.get(process_id).snapshot()

    def run_foreground(self, command: str) -> str:
        """Run to completion and return combined output; nothing is recorded."""
        return self.shell.run(command)

    def list(self) -> List[BackgroundProcess]:
        return [self._records[k] for k in sorted(self._records)]

    def dispose(self, process_id) -> None:
        """Forget a finished record. Running processes cannot be disposed."""
        record = self.get(process_id)
        if record.is_running:
            raise ValueError(f"Process {record.id} is still running")
        del self._records[record.id]

    def prune(self) -> int:
        """Dispose every finished record; return how many were removed."""
        finished = [pid for pid, rec in self._records.items() if not rec.is_running]
        for pid in finished:
            del self._records[pid]
        return len(finished)

    def shutdown(self) -> None:
        """Terminate processes that are still running."""
        for record in self.list():
            proc = record._popen
            if not record.is_running or proc is None:
                continue
            _log.debug("Terminating background process %d", record.id)
            proc.terminate()
            try:
                proc.wait(timeout=_TERMINATE_GRACE)
            except subprocess.TimeoutExpired:
                proc.kill()
