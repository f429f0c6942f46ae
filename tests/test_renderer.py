"""Tests for ConsoleSink output."""

import io

from rich.console import Console

from tagchat.protocol import FunctionCall
from tagchat.renderer import ConsoleSink
from tagchat.segmenter import StreamSegmenter


def _sink(show_thinking=True):
    buf = io.StringIO()
    console = Console(file=buf, force_terminal=False, width=80, color_system=None)
    return ConsoleSink(console, show_thinking=show_thinking), buf


def test_plain_text_is_written_verbatim():
    sink, buf = _sink()
    sink.plain("Hello [bold]world[/bold]")
    assert buf.getvalue() == "Hello [bold]world[/bold]"


def test_thinking_is_shown_with_header():
    sink, buf = _sink()
    sink.thinking("pondering")
    sink.thinking_end()
    out = buf.getvalue()
    assert "Thinking..." in out
    assert "pondering" in out
    assert out.endswith("\n")


def test_thinking_can_be_hidden():
    sink, buf = _sink(show_thinking=False)
    seg = StreamSegmenter(sink)
    seg.feed("<think>secret</think>visible")
    seg.finish()
    assert "secret" not in buf.getvalue()
    assert buf.getvalue() == "visible"


def test_function_call_panel():
    sink, buf = _sink()
    sink.plain("before")
    sink.function_call('<function_calls><invoke name="A"/></function_calls>',
                       [FunctionCall("A")])
    out = buf.getvalue()
    assert out.startswith("before\n")
    assert "function call" in out
    assert '<invoke name="A"/>' in out


def test_result_and_error_panels():
    sink, buf = _sink()
    sink.result("\n<function_results>\nhi\n</function_results>\n")
    sink.error("Cannot connect [x]")
    out = buf.getvalue()
    assert "function result" in out
    assert "Cannot connect [x]" in out


def test_notice_escapes_markup():
    sink, buf = _sink()
    sink.notice('Parameter "c" may contain unescaped \'<\' (use &lt;) [red]')
    assert "[red]" in buf.getvalue()
