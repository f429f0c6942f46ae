"""Tool registry: dict-based dispatch of extracted function calls."""
from typing import Callable, Dict, List, Optional

from ..errors import ProcessNotFoundError
from ..logger import get_logger
from ..protocol import FunctionCall, wrap_result
from .file_ops import FileOps, FileOperationError
from .processes import ProcessRegistry

_log = get_logger(__name__)

NoticeCallback = Callable[[str], None]


class MissingArgument(KeyError):
    pass


class _ToolEntry:
    """Single tool registration: handler + required parameters."""
    __slots__ = ("handler", "required")

    def __init__(self, handler: Callable, required: tuple = ()):
        self.handler = handler
        self.required = required


def _int(value: Optional[str], default: Optional[int]) -> Optional[int]:
    """Parse an integer parameter, falling back to ``default``."""
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def _bool(value: Optional[str]) -> bool:
    return str(value).strip().lower() == "true" if value is not None else False


class ToolRegistry:
    def __init__(self, project_root: str, processes: ProcessRegistry,
                 on_notice: Optional[NoticeCallback] = None):
        self.file_ops = FileOps(project_root)
        self.processes = processes
        self.on_notice = on_notice
        self._tools: Dict[str, _ToolEntry] = {}
        self._register_tools()

    def _register_tools(self):
        """Register all tools: name -> handler taking the parameter mapping."""
        f = self.file_ops
        T = _ToolEntry

        # ── Terminal ──
        self._tools["run_in_terminal"] = T(
            handler=self._run_in_terminal,
            required=("command",),
        )
        self._tools["get_terminal_output"] = T(
            handler=lambda a: self.processes.poll(a["id"]),
            required=("id",),
        )

        # ── Explore ──
        self._tools["list_dir"] = T(
            handler=lambda a: f.list_dir(a["path"]),
            required=("path",),
        )
        self._tools["file_search"] = T(
            handler=lambda a: f.file_search(a["query"], _int(a.get("maxResults"), 50)),
            required=("query",),
        )
        self._tools["grep_search"] = T(
            handler=lambda a: f.grep_search(
                a["query"], _bool(a.get("isRegexp")),
                a.get("includePattern") or "**/*", _int(a.get("maxResults"), 50)),
            required=("query",),
        )

        # ── Files ──
        self._tools["read_file"] = T(
            handler=lambda a: f.read_file(
                a["filePath"],
                _int(a.get("offset"), None),
                _int(a.get("limit"), None)),
            required=("filePath",),
        )
        self._tools["create_file"] = T(
            handler=lambda a: f.create_file(a["filePath"], a.get("content", "")),
            required=("filePath",),
        )
        self._tools["replace_string_in_file"] = T(
            handler=lambda a: f.replace_string_in_file(
                a["filePath"], a["oldString"], a.get("newString", "")),
            required=("filePath", "oldString"),
        )

    @property
    def names(self) -> List[str]:
        return list(self._tools)

    def _notice(self, message: str) -> None:
        if self.on_notice is not None:
            self.on_notice(message)

    def _run_in_terminal(self, a: Dict[str, str]) -> str:
        command = a["command"]
        explanation = a.get("explanation") or "Running command"
        self._notice(f"Executing: {explanation}")
        self._notice(f"Command: {command}")

        if not _bool(a.get("isBackground")):
            return self.processes.run_foreground(command)

        pid = self.processes.start(command, explanation)
        record = self.processes.get(pid)
        if record.error is not None:
            return f"Error executing command: {record.error}"
        return f"Terminal started with ID: {pid}"

    def execute(self, call: FunctionCall) -> Optional[str]:
        """Run one call and return its result text; ``None`` for unknown names."""
        entry = self._tools.get(call.name)
        if not entry:
            _log.debug("Ignoring unknown tool: %s", call.name)
            return None

        try:
            for name in entry.required:
                if name not in call.parameters:
                    raise MissingArgument(name)
            return entry.handler(call.parameters)
        except FileOperationError as e:
            return f"Error: {e}"
        except ProcessNotFoundError as e:
            return str(e)
        except MissingArgument as e:
            return f"Missing argument: {e.args[0]}"
        except Exception as e:
            _log.warning("%s failed: %s: %s", call.name, type(e).__name__, e)
            return f"{call.name} error: {type(e).__name__}: {e}"

    def dispatch(self, calls: List[FunctionCall]) -> str:
        """Execute calls in order and concatenate their wrapped results."""
        results = []
        for call in calls:
            _log.debug("Dispatching %s", call.name)
            text = self.execute(call)
            if text is not None:
                results.append(wrap_result(text))
        return "".join(results)
