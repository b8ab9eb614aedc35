#!/usr/bin/env python3
"""
Parley - Streaming Chat CLI

Command-line interface for chatting with OpenAI-compatible model providers,
inspecting configuration and running the HTTP service.
"""

import asyncio
import json
from typing import Optional

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from parley import __version__
from parley.generation.controller import GenerationController, create_controller
from parley.providers.transport import ChatTransport
from parley.utilities.config import ParleyConfig, get_config
from parley.utilities.errors import ParleyError
from parley.utilities.utils import log_error, log_info, log_success, log_warning, setup_logging

app = typer.Typer(
    name="parley",
    help="Parley - streaming chat with OpenAI-compatible model providers",
    add_completion=False,
)

console = Console()


# ========== HELPER FUNCTIONS ==========
def print_banner():
    """Print Parley banner"""
    banner = """
╔═══════════════════════════════════════════════════╗
║                                                   ║
║     ██████╗  █████╗ ██████╗ ██╗     ███████╗██╗   ║
║     ██╔══██╗██╔══██╗██╔══██╗██║     ██╔════╝╚██╗  ║
║     ██████╔╝███████║██████╔╝██║     █████╗   ██║  ║
║     ██╔═══╝ ██╔══██║██╔══██╗██║     ██╔══╝   ██║  ║
║     ██║     ██║  ██║██║  ██║███████╗███████╗██╔╝  ║
║     ╚═╝     ╚═╝  ╚═╝╚═╝  ╚═╝╚══════╝╚══════╝╚═╝   ║
║                                                   ║
║         Streaming Chat                            ║
║                                                   ║
╚═══════════════════════════════════════════════════╝
    """
    console.print(banner, style="bold cyan")


def load_config(model: Optional[str] = None, verbose: bool = False) -> ParleyConfig:
    """Load configuration from the environment and apply CLI overrides."""
    try:
        config = get_config(from_env=True)
    except ParleyError as e:
        log_error(f"Invalid configuration: {e}")
        raise typer.Exit(1)

    if model:
        config.generation.default_model = model
    if verbose:
        config.logging.verbose = True
    # Console logging would interleave with streamed text
    config.logging.log_to_console = verbose
    setup_logging(config)
    return config


def print_provider_status(config: ParleyConfig):
    backend = config.provider.backend.value
    if config.provider.is_api_key_configured or backend != "direct":
        console.print(f"🔌 Backend: {backend} | Model: {config.generation.default_model}", style="green")
    else:
        log_warning("No API key configured: running in mock mode")


class StreamPrinter:
    """Controller listener that prints a streaming reply as it grows."""

    def __init__(self, controller: GenerationController):
        self.controller = controller
        self.reset()

    def reset(self):
        self._message_id: Optional[str] = None
        self._content_sent = 0
        self._reasoning_sent = 0

    def __call__(self):
        partial = self.controller.partial_response
        if partial is None:
            return

        if partial.id != self._message_id:
            self._message_id = partial.id
            self._content_sent = 0
            self._reasoning_sent = 0

        if len(partial.reasoning) > self._reasoning_sent:
            console.print(partial.reasoning[self._reasoning_sent:], end="", style="dim italic", markup=False)
            self._reasoning_sent = len(partial.reasoning)

        if len(partial.content) > self._content_sent:
            console.print(partial.content[self._content_sent:], end="", markup=False, highlight=False)
            self._content_sent = len(partial.content)


async def generate_reply(controller: GenerationController, printer: StreamPrinter, text: str):
    """Submit one message and print the reply; Ctrl+C stops it."""
    printer.reset()
    console.print()
    await controller.submit(text)
    console.print()

    if controller.last_error:
        console.print(Panel(controller.last_error, title="❌ Error", border_style="red"))


def print_conversations(controller: GenerationController):
    table = Table(title="💬 Conversations", show_header=True, header_style="bold cyan")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Title", style="cyan")
    table.add_column("Messages", style="green", justify="right")
    table.add_column("Updated", style="dim")

    selected_id = controller.store.selected_id
    for i, conversation in enumerate(controller.store.list_ordered(), 1):
        marker = "▶ " if conversation.id == selected_id else ""
        table.add_row(
            str(i),
            f"{marker}{conversation.title}",
            str(len(conversation.messages)),
            conversation.last_updated.strftime("%H:%M:%S"),
        )

    console.print(table)


def handle_command(controller: GenerationController, command: str) -> bool:
    """
    Run a slash command in the chat REPL.

    Returns:
        False if the REPL should exit
    """
    name, _, argument = command[1:].partition(" ")
    argument = argument.strip()

    if name in ("exit", "quit", "q"):
        return False

    if name == "new":
        controller.create_conversation()
        log_success("New conversation")
    elif name == "list":
        print_conversations(controller)
    elif name == "switch":
        ordered = controller.store.list_ordered()
        if not argument.isdigit() or not 1 <= int(argument) <= len(ordered):
            console.print("Usage: /switch <number from /list>", style="yellow")
        else:
            conversation = ordered[int(argument) - 1]
            controller.select_conversation(conversation.id)
            console.print(f"➡️  {conversation.title}", style="green")
            for message in conversation.messages:
                style = "bold cyan" if message.role.value == "user" else "white"
                console.print(f"[{message.role.value}] ", style=style, end="", markup=False)
                console.print(Markdown(message.content))
    elif name == "delete":
        selected = controller.selected_conversation
        if selected is None:
            console.print("No conversation selected", style="yellow")
        else:
            controller.delete_conversation(selected.id)
            log_success(f"Deleted: {selected.title}")
    elif name == "model":
        if argument:
            controller.set_model(argument)
        console.print(f"🤖 Model: {controller.current_model_id}", style="green")
    else:
        console.print(
            "Commands: /new /list /switch <n> /delete /model [id] /exit",
            style="dim",
        )
    return True


# ========== CHAT COMMAND ==========
@app.command()
def chat(
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model identifier"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show log output"),
):
    """
    Start an interactive chat session.

    Replies stream in as they are generated. Press Ctrl+C to stop a reply;
    type /help for conversation commands and /exit to quit.
    """
    print_banner()
    config = load_config(model, verbose)
    print_provider_status(config)
    console.print("   Type /help for commands. Ctrl+C stops a reply.\n", style="dim")

    controller = create_controller(config)
    printer = StreamPrinter(controller)
    controller.add_listener(printer)

    with asyncio.Runner() as runner:
        while True:
            try:
                text = console.input("[bold cyan]❯[/bold cyan] ")
            except (KeyboardInterrupt, EOFError):
                break

            if not text.strip():
                continue
            if text.startswith("/"):
                if not handle_command(controller, text.strip()):
                    break
                continue

            try:
                runner.run(generate_reply(controller, printer, text))
            except KeyboardInterrupt:
                # The runner cancelled the reply; the controller kept the partial text
                console.print("\n⏹️  Stopped", style="yellow")

        runner.run(controller.wait_for_background_tasks())

    console.print("\n👋 Goodbye!", style="bold cyan")


# ========== ASK COMMAND ==========
@app.command()
def ask(
    message: str = typer.Argument(..., help="Message to send"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model identifier"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show log output"),
):
    """
    Send a single message and stream the reply.

    Examples:
        parley ask "What is an event stream?"
        parley ask "Summarize SSE" --model openai/gpt-4o-mini
    """
    config = load_config(model, verbose)
    controller = create_controller(config)
    printer = StreamPrinter(controller)
    controller.add_listener(printer)

    async def run_once():
        await generate_reply(controller, printer, message)
        await controller.wait_for_background_tasks()

    try:
        asyncio.run(run_once())
    except KeyboardInterrupt:
        console.print("\n⏹️  Stopped", style="yellow")

    if controller.last_error:
        raise typer.Exit(1)


# ========== MODELS COMMAND ==========
@app.command()
def models(
    filter_text: Optional[str] = typer.Argument(None, help="Only show models containing this text"),
):
    """
    List the models offered by the configured provider.
    """
    config = load_config()
    if not config.provider.is_api_key_configured:
        log_error("An API key is required to list models")
        raise typer.Exit(1)

    transport = ChatTransport.from_config(config.provider)

    with console.status("[bold green]Fetching models..."):
        try:
            model_ids = asyncio.run(transport.list_models())
        except ParleyError as e:
            log_error(f"Failed to fetch models: {e}")
            raise typer.Exit(1)

    if filter_text:
        model_ids = [m for m in model_ids if filter_text.lower() in m.lower()]

    table = Table(title=f"🤖 Models ({len(model_ids)})", show_header=True, header_style="bold cyan")
    table.add_column("Model", style="cyan")
    for model_id in sorted(model_ids):
        marker = " ✓" if model_id == config.generation.default_model else ""
        table.add_row(f"{model_id}{marker}")
    console.print(table)


# ========== CONFIG COMMAND ==========
@app.command()
def config(
    full: bool = typer.Option(False, "--full", "-f", help="Show full configuration as JSON"),
):
    """
    Show the current configuration (API key masked).
    """
    current = load_config()

    if full:
        json_str = json.dumps(current.model_dump(), indent=2, default=str)
        syntax = Syntax(json_str, "json", theme="monokai", line_numbers=True)
        console.print(Panel(syntax, title="Full Configuration", border_style="cyan"))
        return

    provider = current.model_dump()["provider"]

    table = Table(title="Configuration", show_header=True, header_style="bold cyan")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Backend", current.provider.backend.value)
    table.add_row("Base URL", current.provider.base_url)
    table.add_row("API Key", provider["api_key"] or "(not set)")
    table.add_row("Model", current.generation.default_model)
    table.add_row("Temperature", str(current.generation.temperature))
    table.add_row("Max Tokens", str(current.generation.max_tokens))
    table.add_row("Auto Titles", "✓" if current.naming.enabled else "✗")
    table.add_row("Mock Mode", "✓" if not current.provider.is_api_key_configured else "✗")

    console.print(table)


# ========== SERVE COMMAND ==========
@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """
    Run the HTTP service (REST, SSE and WebSocket chat).
    """
    import uvicorn

    print_banner()
    log_info(f"Serving on http://{host}:{port} (docs at /docs)")
    uvicorn.run("backend.app:app", host=host, port=port, reload=reload, log_level="info")


# ========== MAIN ==========
@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", "-V", help="Show version"),
):
    """
    Parley - Streaming Chat

    Talk to any OpenAI-compatible model from your terminal.
    """
    if version:
        console.print(f"Parley v{__version__}", style="bold cyan")
        raise typer.Exit(0)

    if ctx.invoked_subcommand is None:
        print_banner()
        console.print("Use --help to see available commands\n", style="dim")


if __name__ == "__main__":
    app()
