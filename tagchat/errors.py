"""Structured error types for tagchat."""


class ChatError(Exception):
    """Base error for all chat client operations."""
    pass


class MalformedBlockError(ChatError):
    """A closed function-call block could not be parsed."""

    def __init__(self, reason: str, block: str = ""):
        self.reason = reason
        self.block = block
        super().__init__(f"Malformed function call block: {reason}")


class ProcessNotFoundError(ChatError):
    """Poll or dispose on a process id that was never issued (or was disposed)."""

    def __init__(self, process_id):
        self.process_id = process_id
        super().__init__(f"No process found with ID: {process_id}")
