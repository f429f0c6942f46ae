"""Streaming tag segmenter.

Splits incremental model output into plain prose, ``<think>`` commentary and
``<function_calls>`` blocks while the text is still arriving. Markers may be
split across chunks at any byte, so each region keeps a small undelivered tail
(never longer than the longest marker minus one) instead of rescanning
everything it has seen.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence

from .errors import MalformedBlockError
from .logger import get_logger
from .protocol import (
    CALLS_CLOSE,
    CALLS_OPEN,
    THINK_CLOSE,
    THINK_OPEN,
    FunctionCall,
    extract_function_calls,
)

_log = get_logger(__name__)

__all__ = ["Region", "StreamState", "StreamSink", "StreamSegmenter"]

_PLAIN_MARKERS = (THINK_OPEN, CALLS_OPEN)


class Region(str, Enum):
    PLAIN = "plain"
    THINKING = "thinking"
    FUNCTION_CALL = "function_call"


@dataclass
class StreamState:
    """Cross-chunk state for one assistant turn."""
    region: Region = Region.PLAIN
    pending: str = ""  # received but not yet delivered; may end in a partial marker
    block: str = ""    # function-call text from the opening marker onwards
    calls: List[FunctionCall] = field(default_factory=list)


class StreamSink:
    """Destination for segmented output. Every hook defaults to a no-op."""

    def plain(self, text: str) -> None:
        pass

    def thinking(self, text: str) -> None:
        pass

    def thinking_end(self) -> None:
        pass

    def function_call(self, block: str, calls: List[FunctionCall]) -> None:
        pass

    def notice(self, message: str) -> None:
        pass


def _held_suffix_len(text: str, markers: Sequence[str]) -> int:
    """Length of the longest suffix of ``text`` that is a proper prefix of a marker."""
    longest = 0
    for marker in markers:
        for n in range(min(len(marker) - 1, len(text)), longest, -1):
            if text.endswith(marker[:n]):
                longest = n
                break
    return longest


Extractor = Callable[..., List[FunctionCall]]


class StreamSegmenter:
    """Feed chunks in arrival order with :meth:`feed`, then call :meth:`finish`."""

    def __init__(self, sink: Optional[StreamSink] = None,
                 extractor: Extractor = extract_function_calls):
        self.sink = sink or StreamSink()
        self._extract = extractor
        self.state = StreamState()

    @property
    def region(self) -> Region:
        return self.state.region

    @property
    def calls(self) -> List[FunctionCall]:
        """Calls extracted from every block closed so far this turn."""
        return self.state.calls

    def reset(self) -> None:
        self.state = StreamState()

    def feed(self, chunk: str) -> None:
        if not chunk:
            return
        self.state.pending += chunk
        while self._step():
            pass

    def finish(self) -> List[FunctionCall]:
        """Flush whatever is buffered and return this turn's calls.

        An unterminated thinking or function-call region is closed as-is.
        """
        state = self.state
        if state.region is Region.PLAIN:
            self._emit_plain(state.pending)
        elif state.region is Region.THINKING:
            self._emit_thinking(state.pending)
            self.sink.thinking_end()
        else:
            _log.warning("Stream ended inside an unterminated function call block")
            self._close_block(state.block + state.pending)
        calls = state.calls
        self.state = StreamState()
        return calls

    # ── State machine ──────────────────────────

    def _step(self) -> bool:
        """Advance over ``pending``; True when a transition happened."""
        region = self.state.region
        if region is Region.PLAIN:
            return self._scan_plain()
        if region is Region.THINKING:
            return self._scan_thinking()
        return self._scan_function_call()

    def _scan_plain(self) -> bool:
        state = self.state
        text = state.pending
        found = [(text.find(m), m) for m in _PLAIN_MARKERS]
        found = [(idx, m) for idx, m in found if idx != -1]
        if found:
            idx, marker = min(found)
            self._emit_plain(text[:idx])
            state.pending = text[idx + len(marker):]
            if marker == THINK_OPEN:
                state.region = Region.THINKING
            else:
                state.region = Region.FUNCTION_CALL
                state.block = marker
            _log.debug("Region -> %s", state.region.value)
            return True

        cut = len(text) - _held_suffix_len(text, _PLAIN_MARKERS)
        self._emit_plain(text[:cut])
        state.pending = text[cut:]
        return False

    def _scan_thinking(self) -> bool:
        state = self.state
        text = state.pending
        idx = text.find(THINK_CLOSE)
        if idx != -1:
            self._emit_thinking(text[:idx])
            self.sink.thinking_end()
            state.pending = text[idx + len(THINK_CLOSE):]
            state.region = Region.PLAIN
            return True

        cut = len(text) - _held_suffix_len(text, (THINK_CLOSE,))
        self._emit_thinking(text[:cut])
        state.pending = text[cut:]
        return False

    def _scan_function_call(self) -> bool:
        state = self.state
        text = state.pending
        idx = text.find(CALLS_CLOSE)
        if idx != -1:
            end = idx + len(CALLS_CLOSE)
            block = state.block + text[:end]
            state.block = ""
            state.pending = text[end:]
            state.region = Region.PLAIN
            self._close_block(block)
            return True

        cut = len(text) - _held_suffix_len(text, (CALLS_CLOSE,))
        state.block += text[:cut]
        state.pending = text[cut:]
        return False

    # ── Output ─────────────────────────────────

    def _emit_plain(self, text: str) -> None:
        if text:
            self.sink.plain(text)

    def _emit_thinking(self, text: str) -> None:
        if text:
            self.sink.thinking(text)

    def _close_block(self, block: str) -> None:
        try:
            calls = self._extract(block, on_warning=self.sink.notice)
        except MalformedBlockError as e:
            _log.warning("%s", e)
            self.sink.notice(str(e))
            calls = []
        self.state.calls.extend(calls)
        self.sink.function_call(block, calls)
