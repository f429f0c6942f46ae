"""
tagchat: terminal chat client for tag-protocol tool use.

Command: tagchat run
"""

import os
import sys
from pathlib import Path
from typing import Tuple

import click
from rich.console import Console

from . import __version__
from .chat import ChatSession
from .config import CONFIG_DIR, HISTORY_FILE, Config
from .llm import LLMAdapter
from .logger import setup_logger
from .prompts import load_system_prompt
from .renderer import ConsoleSink
from .tools.processes import ProcessRegistry
from .tools.registry import ToolRegistry
from .tools.shell import ShellExecutor

console = Console()
BANNER = (
    f"[bold #7FA6D9]tagchat[/bold #7FA6D9] "
    f"[dim]v{__version__} · streaming chat with tag-based tools[/dim]"
)

# Returned by the prompt when Ctrl-L is pressed.
_CLEAR_REQUEST = "\x00clear"


def _load_config(project_dir, **overrides) -> Config:
    config = Config.load(project_dir)
    try:
        config.apply_overrides(**overrides)
    except ValueError as e:
        raise click.BadParameter(str(e))
    setup_logger(verbose=config.verbose, log_file=config.log_file)
    return config


def build_session(config: Config) -> Tuple[ChatSession, ProcessRegistry]:
    """Wire the LLM, the process registry and the tools into a chat session."""
    project_root = Path(config.project_root).resolve()
    if not project_root.is_dir():
        console.print(f"[red]Error: '{project_root}' is not a valid directory.[/red]")
        sys.exit(1)

    sink = ConsoleSink(console, show_thinking=config.show_thinking)
    shell = ShellExecutor(str(project_root), timeout=config.command_timeout,
                          max_output_chars=config.max_output_chars)
    processes = ProcessRegistry(str(project_root), shell=shell)
    tools = ToolRegistry(str(project_root), processes, on_notice=sink.system)

    llm = LLMAdapter(
        model=config.model,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        api_base=config.base_url,
        api_key=config.api_key,
    )

    prompt, source = load_system_prompt(config.system_prompt_path)
    if source is not None:
        sink.system(f"System instructions loaded from {source}")
    else:
        sink.system(f"No system instructions found at {config.system_prompt_path}; "
                    "using built-in instructions")
    sink.system("Tools: " + ", ".join(tools.names))

    session = ChatSession(llm, tools, sink, system_prompt=prompt,
                          max_followups=config.max_followups)
    return session, processes


@click.group(invoke_without_command=True)
@click.pass_context
def cli(ctx):
    """tagchat: streaming chat with tag-based tools for your terminal."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(run)


@cli.command()
@click.option("--model", "-m", default=None, help="Model name")
@click.option("--host", default=None, help="Chat server URL")
@click.option("--api-key", "-k", default=None, help="API key override")
@click.option("--project-dir", "-d", default=".", help="Project directory")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
def run(model=None, host=None, api_key=None, project_dir=".", verbose=False):
    """Start an interactive session."""
    console.print(BANNER)
    os.environ.setdefault("PROMPT_TOOLKIT_NO_CPR", "1")
    config = _load_config(project_dir, model=model, host=host, api_key=api_key,
                          verbose=verbose or None)
    console.print(f"  [dim]{config.model} @ {config.base_url}[/dim]")

    chat, processes = build_session(config)

    from .commands import handle_command
    from prompt_toolkit import PromptSession
    from prompt_toolkit.history import FileHistory
    from prompt_toolkit.key_binding import KeyBindings

    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    session = PromptSession(history=FileHistory(str(HISTORY_FILE)), multiline=False)

    repl_kb = KeyBindings()

    @repl_kb.add("escape", "enter")
    def _newline(event):
        event.current_buffer.insert_text("\n")

    @repl_kb.add("c-l")
    def _clear(event):
        event.app.exit(result=_CLEAR_REQUEST)

    console.print("  [dim]Type /help for commands. Esc+Enter for a newline.[/dim]\n")

    try:
        while True:
            try:
                user_input = session.prompt("> ", key_bindings=repl_kb)
            except (EOFError, KeyboardInterrupt):
                console.print("\n[dim]Goodbye![/dim]")
                break

            if user_input == _CLEAR_REQUEST:
                chat.clear()
                console.print("  [dim]Conversation history cleared[/dim]")
                continue

            user_input = user_input.strip()
            if not user_input:
                continue

            if user_input.startswith("/"):
                result = handle_command(user_input, console=console, session=chat,
                                        config=config, processes=processes)
                if result == "quit":
                    break
                continue

            try:
                chat.send(user_input)
            except KeyboardInterrupt:
                console.print("\n[yellow]  Interrupted.[/yellow]")
            except Exception as error:
                console.print(f"\n[red]  Error: {error}[/red]")
                if config.verbose:
                    import traceback

                    console.print(f"[dim]{traceback.format_exc()}[/dim]")
    finally:
        processes.shutdown()


@cli.command()
@click.argument("message", nargs=-1, required=True)
@click.option("--model", "-m", default=None)
@click.option("--host", default=None)
@click.option("--project-dir", "-d", default=".")
def ask(message, model, host, project_dir):
    """Run a single query, including any tool follow-ups."""
    config = _load_config(project_dir, model=model, host=host)
    chat, processes = build_session(config)
    try:
        chat.send(" ".join(message))
    finally:
        processes.shutdown()


@cli.command("config")
@click.option("--project-dir", "-d", default=".")
def config_cmd(project_dir):
    """Show configuration."""
    from .commands import show_config_panel

    cfg = Config.load(project_dir)
    show_config_panel(console, cfg)
    diff = cfg.get_config_diff()
    if diff:
        console.print("  [dim]Changed from defaults: " + ", ".join(sorted(diff)) + "[/dim]")


if __name__ == "__main__":
    cli()
