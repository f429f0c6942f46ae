"""Slash-command routing and handlers."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .chat import ChatSession
from .config import Config
from .renderer import ACCENT, DIM, OK, WARN
from .tools.processes import ProcessRegistry

SLASH_COMMANDS = ["/help", "/clear", "/ps", "/prune", "/config", "/quit"]
_SLASH_ALIASES = {"/h": "/help", "/?": "/help", "/exit": "/quit", "/q": "/quit"}

HELP_ROWS = [
    ("/help", "Show this help"),
    ("/clear", "Clear conversation history (keeps system instructions)"),
    ("/ps", "List background processes"),
    ("/prune", "Forget finished background processes"),
    ("/config", "Show the effective configuration"),
    ("/quit", "Exit"),
    ("Esc+Enter", "Insert a newline"),
    ("Ctrl+L", "Clear conversation history"),
    ("Ctrl+C / Ctrl+D", "Exit"),
]


@dataclass
class CommandContext:
    console: Console
    session: ChatSession
    config: Config
    processes: ProcessRegistry


CommandHandler = Callable[[CommandContext, list[str]], str]


def _resolve_command(raw_cmd: str) -> str:
    """Resolve abbreviated slash commands via exact/alias/prefix matching."""
    cmd = raw_cmd.lower()
    if cmd in SLASH_COMMANDS:
        return cmd
    if cmd in _SLASH_ALIASES:
        return _SLASH_ALIASES[cmd]

    matches = [candidate for candidate in SLASH_COMMANDS if candidate.startswith(cmd)]
    if len(matches) == 1:
        return matches[0]
    return cmd


def handle_command(
    command: str,
    *,
    console: Console,
    session: ChatSession,
    config: Config,
    processes: ProcessRegistry,
) -> str:
    """Handle one slash command string; returns ``"quit"`` to end the session."""
    parts = command.split()
    if not parts:
        return ""

    cmd = _resolve_command(parts[0])
    handler = COMMAND_HANDLERS.get(cmd)
    if not handler:
        console.print(f"  [{WARN}]Unknown: {cmd}. Try /help[/{WARN}]")
        return ""

    ctx = CommandContext(console=console, session=session, config=config,
                         processes=processes)
    return handler(ctx, parts[1:])


def show_config_panel(console: Console, config: Config) -> None:
    table = Table(show_header=False, padding=(0, 2), box=None)
    table.add_column("Key", style=f"bold {ACCENT}", min_width=14)
    table.add_column("Value")
    for key, value in config.summary().items():
        table.add_row(key, str(value))
    console.print(Panel(table, title=f"[bold {ACCENT}] Configuration [/bold {ACCENT}]",
                        title_align="left", border_style=DIM, padding=(1, 2)))


def _format_age(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.0f}s"
    if seconds < 3600:
        return f"{seconds / 60:.0f}m"
    return f"{seconds / 3600:.1f}h"


def _cmd_help(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    table = Table(show_header=False, padding=(0, 2), box=None)
    table.add_column("Command", style=f"bold {ACCENT}")
    table.add_column("Description", style=DIM)
    for row in HELP_ROWS:
        table.add_row(*row)
    ctx.console.print(table)
    return ""


def _cmd_clear(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    ctx.session.clear()
    ctx.console.print(f"  [{OK}]✓ Conversation history cleared.[/{OK}]")
    return ""


def _cmd_ps(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    records = ctx.processes.list()
    if not records:
        ctx.console.print(f"  [{DIM}]No background processes.[/{DIM}]")
        return ""

    now = time.time()
    table = Table(padding=(0, 1), box=None, header_style=f"bold {ACCENT}")
    table.add_column("ID", justify="right")
    table.add_column("Status")
    table.add_column("Age", justify="right", style=DIM)
    table.add_column("Command")
    for rec in records:
        table.add_row(str(rec.id), rec.status,
                      _format_age((rec.end_time or now) - rec.start_time),
                      rec.command)
    ctx.console.print(table)
    return ""


def _cmd_prune(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    removed = ctx.processes.prune()
    ctx.console.print(f"  [{OK}]✓ Removed {removed} finished process record(s).[/{OK}]")
    return ""


def _cmd_config(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    show_config_panel(ctx.console, ctx.config)
    return ""


def _cmd_quit(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    ctx.console.print(f"[{DIM}]Goodbye![/{DIM}]")
    return "quit"


COMMAND_HANDLERS: dict[str, CommandHandler] = {
    "/help": _cmd_help,
    "/clear": _cmd_clear,
    "/ps": _cmd_ps,
    "/prune": _cmd_prune,
    "/config": _cmd_config,
    "/quit": _cmd_quit,
}
