"""tagchat: streaming terminal chat with tag-based tool calls."""

__version__ = "1.0.0"
