"""Shared fixtures for tagchat tests."""

import os
from unittest.mock import MagicMock

import pytest

from tagchat.renderer import ChatSink


@pytest.fixture
def tmp_dir(tmp_path):
    """Provide a temporary directory and cd into it."""
    orig = os.getcwd()
    os.chdir(tmp_path)
    yield tmp_path
    os.chdir(orig)


@pytest.fixture
def mock_console():
    """A mock Rich Console that silently accepts all print calls."""
    c = MagicMock()
    c.print = MagicMock()
    c.input = MagicMock(return_value="n")
    return c


class CollectingSink(ChatSink):
    """Records everything the segmenter and session emit."""

    def __init__(self):
        self.events = []

    def _text(self, kind):
        return "".join(data for k, data in self.events if k == kind)

    @property
    def plain_text(self):
        return self._text("plain")

    @property
    def thinking_text(self):
        return self._text("thinking")

    def kinds(self, kind):
        return [data for k, data in self.events if k == kind]

    def plain(self, text):
        self.events.append(("plain", text))

    def thinking(self, text):
        self.events.append(("thinking", text))

    def thinking_end(self):
        self.events.append(("thinking_end", None))

    def function_call(self, block, calls):
        self.events.append(("function_call", (block, calls)))

    def notice(self, message):
        self.events.append(("notice", message))

    def system(self, message):
        self.events.append(("system", message))

    def result(self, text):
        self.events.append(("result", text))

    def error(self, message):
        self.events.append(("error", message))

    def end_turn(self):
        self.events.append(("end_turn", None))


@pytest.fixture
def sink():
    return CollectingSink()


class DummyLLM:
    """Replays scripted replies; one list of chunks per request."""

    def __init__(self, replies):
        self.model = "test-model"
        self._replies = list(replies)
        self.requests = []

    def chat_stream(self, messages):
        from tagchat.llm import LLMResponse

        self.requests.append([dict(m) for m in messages])
        chunks = self._replies.pop(0) if self._replies else ["ok"]
        for chunk in chunks:
            yield ("text", chunk)
        yield ("done", LLMResponse(content="".join(chunks),
                                   usage={"total_tokens": 10}))
