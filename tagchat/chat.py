"""Chat session: streams a turn through the segmenter and runs the follow-up loop."""

from typing import Any, Dict, List, Optional, Tuple

from .llm import LLMAdapter
from .logger import get_logger
from .protocol import FunctionCall
from .renderer import ChatSink
from .segmenter import StreamSegmenter
from .tools.registry import ToolRegistry

_log = get_logger(__name__)

__all__ = ["ChatSession"]


class ChatSession:
    """Owns the conversation history for one interactive session.

    A user message starts an exchange. Every turn is streamed through a
    :class:`StreamSegmenter`; calls found in the turn are dispatched once the
    stream ends, and their results are sent back as the next user message
    until a turn produces no results or ``max_followups`` is reached.
    """

    def __init__(self, llm: LLMAdapter, tools: ToolRegistry, sink: ChatSink,
                 system_prompt: Optional[str] = None, max_followups: int = 10):
        self.llm = llm
        self.tools = tools
        self.sink = sink
        self.max_followups = max_followups
        self.segmenter = StreamSegmenter(sink)
        self.conversation: List[Dict[str, Any]] = []
        self.total_tokens = 0
        if system_prompt:
            self.conversation.append({"role": "system", "content": system_prompt})

    def send(self, message: str) -> str:
        """Send ``message`` and return the last assistant reply of the exchange."""
        if message.strip():
            self.conversation.append({"role": "user", "content": message})

        followups = 0
        while True:
            reply, calls, completed = self._stream_turn()
            if not completed:
                return reply

            results = self.tools.dispatch(calls) if calls else ""
            if not results:
                return reply

            self.sink.result(results)
            self.conversation.append({"role": "user", "content": results})

            if followups >= self.max_followups:
                _log.warning("Follow-up cap reached (%d)", self.max_followups)
                self.sink.notice(
                    f"Reached max follow-ups ({self.max_followups}); "
                    "send a message to continue.")
                return reply
            followups += 1

    def _stream_turn(self) -> Tuple[str, List[FunctionCall], bool]:
        """Request one completion; returns (reply, calls, completed)."""
        self.segmenter.reset()
        text = ""
        reasoning_open = False
        completed = True

        try:
            for event_type, data in self.llm.chat_stream(self.conversation):
                if event_type == "text":
                    if reasoning_open:
                        self.sink.thinking_end()
                        reasoning_open = False
                    text += data
                    self.segmenter.feed(data)
                elif event_type == "reasoning":
                    reasoning_open = True
                    self.sink.thinking(data)
                elif event_type == "done" and data.usage:
                    self.total_tokens += data.usage.get("total_tokens", 0)
        except ConnectionError as e:
            _log.error("Connection error: %s", e)
            self.segmenter.reset()
            self.sink.end_turn()
            self.sink.error(str(e))
            return "", [], False
        except KeyboardInterrupt:
            completed = False
            self.sink.notice("Stream interrupted by user")

        if reasoning_open:
            self.sink.thinking_end()
        calls = self.segmenter.finish()
        self.sink.end_turn()

        reply = text.strip()
        if reply:
            self.conversation.append({"role": "assistant", "content": reply})
        return reply, calls if completed else [], completed

    def clear(self) -> None:
        """Drop everything but system messages. Background processes keep running."""
        self.conversation = [m for m in self.conversation if m["role"] == "system"]
        self.segmenter.reset()
