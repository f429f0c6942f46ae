"""Console rendering for segmented stream output."""

from typing import List

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

from .protocol import FunctionCall
from .segmenter import StreamSink

__all__ = ["ChatSink", "ConsoleSink"]

ACCENT = "#58A6FF"
DIM = "#6E7681"
WARN = "#E3B341"
ERROR = "#F85149"
OK = "#57DB9C"


class ChatSink(StreamSink):
    """Stream hooks plus the session-level output a chat turn produces."""

    def system(self, message: str) -> None:
        pass

    def result(self, text: str) -> None:
        pass

    def error(self, message: str) -> None:
        pass

    def end_turn(self) -> None:
        pass


class ConsoleSink(ChatSink):
    """Writes plain text straight through; thinking in a dim style; panels for calls."""

    def __init__(self, console: Console, show_thinking: bool = True):
        self.console = console
        self.show_thinking = show_thinking
        self._in_thinking = False
        self._at_line_start = True

    # ── Helpers ──────────────────────────────────

    def _write_raw(self, chunk: str) -> None:
        """Write a text chunk directly to the underlying stream (no processing)."""
        stream = getattr(self.console, "file", None)
        if stream is not None and hasattr(stream, "write"):
            stream.write(chunk)
            if hasattr(stream, "flush"):
                stream.flush()
        else:
            self.console.print(chunk, end="", markup=False, highlight=False, soft_wrap=True)
        self._at_line_start = chunk.endswith("\n")

    def _line_break(self) -> None:
        if not self._at_line_start:
            self._write_raw("\n")

    # ── StreamSink ───────────────────────────────

    def plain(self, text: str) -> None:
        self._write_raw(text)

    def thinking(self, text: str) -> None:
        if not self.show_thinking:
            return
        if not self._in_thinking:
            self._in_thinking = True
            self._line_break()
            self.console.print(f"[{DIM}]Thinking...[/{DIM}]")
            self._at_line_start = True
        self.console.print(Text(text, style=f"italic {DIM}"), end="",
                           highlight=False, soft_wrap=True)
        self._at_line_start = text.endswith("\n")

    def thinking_end(self) -> None:
        if self._in_thinking:
            self._line_break()
            self._in_thinking = False

    def function_call(self, block: str, calls: List[FunctionCall]) -> None:
        self._line_break()
        self.console.print(Panel(
            Text(block.strip()),
            title=f"[bold {ACCENT}]function call[/bold {ACCENT}]",
            title_align="left",
            border_style=ACCENT,
            padding=(0, 1),
        ))
        self._at_line_start = True

    def notice(self, message: str) -> None:
        self._line_break()
        self.console.print(f"  [{WARN}]⚠ {escape(message)}[/{WARN}]")
        self._at_line_start = True

    # ── Session output ───────────────────────────

    def system(self, message: str) -> None:
        self._line_break()
        self.console.print(f"  [{DIM}]{escape(message)}[/{DIM}]")
        self._at_line_start = True

    def result(self, text: str) -> None:
        self._line_break()
        self.console.print(Panel(
            Text(text.strip()),
            title=f"[bold {OK}]function result[/bold {OK}]",
            title_align="left",
            border_style=OK,
            padding=(0, 1),
        ))
        self._at_line_start = True

    def error(self, message: str) -> None:
        self._line_break()
        self.console.print()
        self.console.print(Panel(
            f"[{ERROR}]{escape(message)}[/{ERROR}]",
            title=f"[bold {ERROR}]Error[/bold {ERROR}]",
            title_align="left",
            border_style=ERROR,
            padding=(0, 2),
        ))
        self._at_line_start = True

    def end_turn(self) -> None:
        self._line_break()
        self._in_thinking = False
