"""Embedded tag protocol: markers, FunctionCall, and block extraction.

A function-call block looks like::

    <function_calls>
    <invoke name="read_file">
    <parameter name="filePath">src/app.py</parameter>
    </invoke>
    </function_calls>

Parameter text is kept raw while scanning and decoded once by
:mod:`tagchat.xml_entities`. Raw text may contain literal ``<`` (source code,
shell redirects); a parameter ends only at ``</parameter>``. XML comments are
dropped and ``<![CDATA[...]]>`` sections are taken verbatim.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .errors import MalformedBlockError
from .logger import get_logger
from .xml_entities import unescape, validate

_log = get_logger(__name__)

__all__ = [
    "THINK_OPEN", "THINK_CLOSE", "CALLS_OPEN", "CALLS_CLOSE",
    "RESULTS_OPEN", "RESULTS_CLOSE",
    "FunctionCall", "extract_function_calls", "wrap_result",
]

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"
CALLS_OPEN = "<function_calls>"
CALLS_CLOSE = "</function_calls>"
RESULTS_OPEN = "<function_results>"
RESULTS_CLOSE = "</function_results>"

_INVOKE_OPEN_RE = re.compile(r"<invoke(\s[^<>]*)?>")
_INVOKE_CLOSE_RE = re.compile(r"</invoke\s*>")
_PARAM_OPEN_RE = re.compile(r"<parameter(\s[^<>]*)?>")
_ATTR_RE = re.compile(r"""([A-Za-z_][\w\-.:]*)\s*=\s*(?:"([^"]*)"|'([^']*)')""")
# CDATA is matched alongside comments and closing tags so markup inside it is
# never mistaken for structure.
_COMMENT_OR_CDATA_RE = re.compile(r"<!\[CDATA\[.*?\]\]>|<!--.*?-->", re.S)
_CDATA_RE = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.S)
_PARAM_END_RE = re.compile(r"<!\[CDATA\[.*?\]\]>|</parameter\s*>", re.S)

WarningCallback = Callable[[str], None]


@dataclass
class FunctionCall:
    name: str
    parameters: Dict[str, str] = field(default_factory=dict)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.parameters.get(key, default)


def wrap_result(text: str) -> str:
    """Wrap one tool result in the result-block markers."""
    return f"\n{RESULTS_OPEN}\n{text}\n{RESULTS_CLOSE}\n"


def _parse_attrs(raw: Optional[str]) -> Dict[str, str]:
    attrs = {}
    for m in _ATTR_RE.finditer(raw or ""):
        value = m.group(2) if m.group(2) is not None else m.group(3)
        attrs[m.group(1)] = unescape(value)
    return attrs


def _is_self_closing(raw: Optional[str]) -> bool:
    return bool(raw) and raw.rstrip().endswith("/")


def _snippet(body: str, pos: int) -> str:
    text = body[pos:pos + 40]
    return text + ("..." if len(body) > pos + 40 else "")


def _strip_markers(block: str) -> str:
    body = block.strip()
    if body.startswith(CALLS_OPEN):
        body = body[len(CALLS_OPEN):]
    if body.endswith(CALLS_CLOSE):
        body = body[:-len(CALLS_CLOSE)]
    return body


def _strip_comments(body: str) -> str:
    return _COMMENT_OR_CDATA_RE.sub(
        lambda m: m.group(0) if m.group(0).startswith("<![") else "", body)


def _find_param_close(body: str, pos: int) -> Optional[re.Match]:
    for m in _PARAM_END_RE.finditer(body, pos):
        if not m.group(0).startswith("<!["):
            return m
    return None


def extract_function_calls(block: str,
                           on_warning: Optional[WarningCallback] = None) -> List[FunctionCall]:
    """Parse a ``<function_calls>`` block into calls, in document order.

    Raises:
        MalformedBlockError: unbalanced tags, unexpected elements, missing or
            duplicate ``name`` attributes. The whole block is rejected.
    """
    body = _strip_comments(_strip_markers(block))
    calls: List[FunctionCall] = []
    pos = 0

    while True:
        idx = body.find("<", pos)
        if idx == -1:
            break

        m = _INVOKE_OPEN_RE.match(body, idx)
        if not m:
            raise MalformedBlockError(
                f"unexpected markup at offset {idx}: {_snippet(body, idx)!r}", block)

        attrs = _parse_attrs(m.group(1))
        name = attrs.get("name", "")
        if not name:
            raise MalformedBlockError("invoke element without a name attribute", block)
        pos = m.end()

        params: Dict[str, str] = {}
        if not _is_self_closing(m.group(1)):
            pos = _parse_parameters(body, pos, name, params, block, on_warning)

        calls.append(FunctionCall(name=name, parameters=params))

    _log.debug("Extracted %d call(s): %s", len(calls), [c.name for c in calls])
    return calls


def _parse_parameters(body: str, pos: int, invoke_name: str, params: Dict[str, str],
                      block: str, on_warning: Optional[WarningCallback]) -> int:
    """Consume parameters up to ``</invoke>``; return the offset after it."""
    while True:
        idx = body.find("<", pos)
        if idx == -1:
            raise MalformedBlockError(f"unterminated invoke '{invoke_name}'", block)

        end = _INVOKE_CLOSE_RE.match(body, idx)
        if end:
            return end.end()

        pm = _PARAM_OPEN_RE.match(body, idx)
        if not pm:
            raise MalformedBlockError(
                f"unexpected markup inside invoke '{invoke_name}': {_snippet(body, idx)!r}",
                block)

        pname = _parse_attrs(pm.group(1)).get("name", "")
        if not pname:
            raise MalformedBlockError(
                f"parameter without a name attribute in invoke '{invoke_name}'", block)
        if pname in params:
            raise MalformedBlockError(
                f"duplicate parameter '{pname}' in invoke '{invoke_name}'", block)

        if _is_self_closing(pm.group(1)):
            raw = ""
            pos = pm.end()
        else:
            close = _find_param_close(body, pm.end())
            if not close:
                raise MalformedBlockError(
                    f"unterminated parameter '{pname}' in invoke '{invoke_name}'", block)
            raw = body[pm.end():close.start()]
            pos = close.end()

        params[pname] = _decode_value(raw, pname, on_warning)


def _decode_text(raw: str, pname: str, on_warning: Optional[WarningCallback]) -> str:
    for warning in validate(raw):
        message = f'Parameter "{pname}" may contain {warning}'
        _log.info(message)
        if on_warning is not None:
            on_warning(message)
    return unescape(raw)


def _decode_value(raw: str, pname: str, on_warning: Optional[WarningCallback]) -> str:
    """Unescape entity text; CDATA sections pass through untouched."""
    parts = []
    pos = 0
    for m in _CDATA_RE.finditer(raw):
        parts.append(_decode_text(raw[pos:m.start()], pname, on_warning))
        parts.append(m.group(1))
        pos = m.end()
    parts.append(_decode_text(raw[pos:], pname, on_warning))
    return "".join(parts)
