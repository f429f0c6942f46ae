import pytest

from tagchat.protocol import FunctionCall
from tagchat.segmenter import Region, StreamSegmenter, _held_suffix_len

from conftest import CollectingSink

STREAM = (
    "Let me check.<think>The user wants a listing.</think>"
    "Running it now."
    '<function_calls>\n<invoke name="list_dir">\n'
    '<parameter name="path">src</parameter>\n</invoke>\n</function_calls>'
    "Done <b>bold</b> & more."
)
CALL = FunctionCall("list_dir", {"path": "src"})


def _run(chunks):
    sink = CollectingSink()
    seg = StreamSegmenter(sink)
    for chunk in chunks:
        seg.feed(chunk)
    calls = seg.finish()
    return sink, calls


def _blocks(sink):
    return [block for block, _ in sink.kinds("function_call")]


def test_scenario_thinking_split_across_chunks():
    sink, calls = _run(["<think>Hel", "lo</think>World"])
    assert sink.thinking_text == "Hello"
    assert sink.plain_text == "World"
    assert calls == []
    assert ("thinking_end", None) in sink.events


def test_whole_stream_in_one_chunk():
    sink, calls = _run([STREAM])
    assert sink.plain_text == "Let me check.Running it now.Done <b>bold</b> & more."
    assert sink.thinking_text == "The user wants a listing."
    assert calls == [CALL]
    assert len(_blocks(sink)) == 1
    assert _blocks(sink)[0].startswith("<function_calls>")
    assert _blocks(sink)[0].endswith("</function_calls>")


@pytest.mark.parametrize("split", range(1, len(STREAM)))
def test_chunk_boundary_invariance_two_chunks(split):
    sink, calls = _run([STREAM[:split], STREAM[split:]])
    assert sink.plain_text == "Let me check.Running it now.Done <b>bold</b> & more."
    assert sink.thinking_text == "The user wants a listing."
    assert calls == [CALL]


def test_chunk_boundary_invariance_single_characters():
    sink, calls = _run(list(STREAM))
    assert sink.plain_text == "Let me check.Running it now.Done <b>bold</b> & more."
    assert sink.thinking_text == "The user wants a listing."
    assert calls == [CALL]


def test_nothing_lost_or_duplicated():
    sink, _ = _run([STREAM[i:i + 7] for i in range(0, len(STREAM), 7)])
    block = _blocks(sink)[0]
    rebuilt = (
        "Let me check.<think>" + sink.thinking_text + "</think>Running it now."
        + block + "Done <b>bold</b> & more."
    )
    assert rebuilt == STREAM


def test_plain_text_is_flushed_immediately():
    sink = CollectingSink()
    seg = StreamSegmenter(sink)
    seg.feed("Hello world")
    assert sink.plain_text == "Hello world"


def test_partial_marker_is_held_back_then_released():
    sink = CollectingSink()
    seg = StreamSegmenter(sink)
    seg.feed("a <th")
    assert sink.plain_text == "a "
    seg.feed("ere")
    assert sink.plain_text == "a <there"


def test_thinking_streams_live():
    sink = CollectingSink()
    seg = StreamSegmenter(sink)
    seg.feed("<think>step one, ")
    assert sink.thinking_text == "step one, "
    assert seg.region is Region.THINKING


def test_function_call_content_is_buffered_silently():
    sink = CollectingSink()
    seg = StreamSegmenter(sink)
    seg.feed('before<function_calls><invoke name="A">')
    assert sink.plain_text == "before"
    assert sink.kinds("function_call") == []
    assert seg.region is Region.FUNCTION_CALL


def test_multiple_transitions_in_one_chunk():
    sink, calls = _run([
        "<think>a</think>b<think>c</think>"
        '<function_calls><invoke name="X"/></function_calls>'
        '<function_calls><invoke name="Y"/></function_calls>d'
    ])
    assert sink.thinking_text == "ac"
    assert sink.plain_text == "bd"
    assert [c.name for c in calls] == ["X", "Y"]
    assert len(sink.kinds("thinking_end")) == 2


def test_malformed_block_yields_no_calls_and_stream_continues():
    sink, calls = _run([
        '<function_calls><invoke name="A"><parameter name="p">x</invoke></function_calls>',
        "after",
    ])
    assert calls == []
    assert sink.plain_text == "after"
    assert any("Malformed function call block" in n for n in sink.kinds("notice"))
    assert sink.kinds("function_call")[0][1] == []


def test_end_of_stream_inside_thinking_is_flushed():
    sink, calls = _run(["<think>unfinished thought</th"])
    assert sink.thinking_text == "unfinished thought</th"
    assert sink.events[-1] == ("thinking_end", None)
    assert calls == []


def test_end_of_stream_inside_function_call_is_best_effort():
    sink, calls = _run(['<function_calls><invoke name="A"><parameter name="p">v</parameter></invoke>'])
    assert calls == [FunctionCall("A", {"p": "v"})]


def test_end_of_stream_with_held_partial_marker_flushes_as_plain():
    sink, _ = _run(["value <function_ca"])
    assert sink.plain_text == "value <function_ca"


def test_finish_resets_state():
    sink = CollectingSink()
    seg = StreamSegmenter(sink)
    seg.feed("<think>x")
    seg.finish()
    assert seg.region is Region.PLAIN
    assert seg.calls == []


def test_codec_warnings_reach_the_sink():
    sink, calls = _run([
        '<function_calls><invoke name="run_in_terminal">'
        '<parameter name="command">ls > out.txt</parameter>'
        "</invoke></function_calls>"
    ])
    assert calls[0].get("command") == "ls > out.txt"
    assert sink.kinds("notice") == ['Parameter "command" may contain unescaped \'>\' (use &gt;)']


@pytest.mark.parametrize("text, expected", [
    ("abc", 0),
    ("abc<", 1),
    ("abc<thi", 4),
    ("abc<function_c", 11),
    ("abc<think>", 0),   # a complete marker is not a proper prefix
    ("<", 1),
])
def test_held_suffix_is_bounded_by_marker_prefix(text, expected):
    assert _held_suffix_len(text, ("<think>", "<function_calls>")) == expected
