"""LLM adapter via litellm (OpenAI-compatible chat endpoint)."""

from typing import Any, Dict, Generator, List, Optional, Tuple
from dataclasses import dataclass

import litellm
litellm.suppress_debug_info = True

from .logger import get_logger

_log = get_logger(__name__)

_PROVIDER_PREFIXES = ("openai/", "ollama/", "ollama_chat/")


@dataclass
class LLMResponse:
    content: Optional[str] = None
    usage: Optional[Dict] = None
    finish_reason: Optional[str] = None


def _usage(obj) -> Optional[Dict]:
    usage = getattr(obj, "usage", None)
    if not usage:
        return None
    return {"prompt_tokens": usage.prompt_tokens,
            "completion_tokens": usage.completion_tokens,
            "total_tokens": usage.total_tokens}


class LLMAdapter:
    """Streams chat completions from an OpenAI-compatible server such as Ollama.

    Tool use happens through tags embedded in the text, so no ``tools`` are
    ever sent; the model only has to produce text.
    """

    def __init__(self, model: str, temperature: float = 0.7,
                 max_tokens: int = 4096, api_base: Optional[str] = None,
                 api_key: Optional[str] = None):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.api_base = api_base
        self.api_key = api_key

    @property
    def litellm_model(self) -> str:
        if self.model.startswith(_PROVIDER_PREFIXES):
            return self.model
        return f"openai/{self.model}"

    def _kwargs(self, messages: List[Dict[str, Any]], stream: bool) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": self.litellm_model, "messages": messages,
            "temperature": self.temperature, "max_tokens": self.max_tokens,
            "stream": stream,
            # Local servers accept any key, but the OpenAI client insists on one.
            "api_key": self.api_key or "not-needed",
        }
        if self.api_base:
            kwargs["api_base"] = self.api_base
        return kwargs

    def chat_stream(self, messages: List[Dict[str, Any]]
                    ) -> Generator[Tuple[str, Any], None, None]:
        """Streaming chat. Yields (event_type, data) tuples.

        Event types:
          "text"      -> str: incremental text content
          "reasoning" -> str: reasoning sent outside the text (separate field)
          "done"      -> LLMResponse: final complete response

        Raises:
            ConnectionError: the request could not be made or the stream broke.
        """
        _log.debug("Requesting %s (%d messages)", self.litellm_model, len(messages))
        try:
            response_stream = litellm.completion(**self._kwargs(messages, stream=True))
        except litellm.exceptions.AuthenticationError as e:
            raise ConnectionError(f"Auth failed. Check API key.\n{e}")
        except litellm.exceptions.APIConnectionError as e:
            raise ConnectionError(
                f"Cannot connect: model={self.model}, base={self.api_base or 'default'}\n{e}")
        except Exception as e:
            raise ConnectionError(f"LLM error: {type(e).__name__}: {e}")

        full_content = ""
        usage = None
        finish_reason = None

        try:
            for chunk in response_stream:
                if not chunk.choices:
                    usage = _usage(chunk) or usage
                    continue

                choice = chunk.choices[0]
                delta = choice.delta

                if getattr(delta, "content", None):
                    full_content += delta.content
                    yield ("text", delta.content)

                rc = getattr(delta, "reasoning_content", None)
                if rc:
                    yield ("reasoning", rc)

                if getattr(choice, "finish_reason", None):
                    finish_reason = choice.finish_reason
                usage = _usage(chunk) or usage
        except Exception as e:
            raise ConnectionError(f"Stream interrupted: {type(e).__name__}: {e}")

        yield ("done", LLMResponse(content=full_content or None, usage=usage,
                                   finish_reason=finish_reason))
