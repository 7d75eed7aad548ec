# main.py
#
# Description: Command-line interface for Sheikh Chat. Reports the AI
#              provider status, tests the connection, answers one-off
#              questions and runs a multi-turn chat in the terminal using
#              the same dispatcher as the web app. Uses structured JSON
#              logging.
#

# --------------------------------------------------------------------------- #
# imports
# --------------------------------------------------------------------------- #
from __future__ import annotations

import logging
import logging.config
import sys
from typing import Any, Callable, Dict, Tuple

import typer
from pydantic import ValidationError

from chat_actions import ResponseDispatcher, status_lines
from chat_state import ROLE_ASSISTANT, ROLE_USER, ChatStateStore, MemoryStorage
from config import load_settings

# --------------------------------------------------------------------------- #
# logging
# --------------------------------------------------------------------------- #
def logging_config(level: str) -> Dict[str, Any]:
    handler = {"handlers": ["stderr"], "level": level, "propagate": True}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": "pythonjsonlogger.json.JsonFormatter",
                "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
            }
        },
        "handlers": {
            "stderr": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stderr",
                "formatter": "json",
            }
        },
        "loggers": {
            "__main__": handler,
            "main": handler,
            "chat_actions": handler,
            "chat_state": handler,
            "providers": handler,
        },
    }


logger = logging.getLogger(__name__)

cli = typer.Typer(help="Sheikh Chat command-line tools.", no_args_is_help=True)


@cli.callback()
def configure(
    log_level: str = typer.Option("WARNING", "--log-level", help="Log level for application loggers."),
) -> None:
    logging.config.dictConfig(logging_config(log_level.upper()))


def build_dispatcher() -> ResponseDispatcher:
    """Load settings once and build the dispatcher, exiting on bad config."""
    try:
        settings = load_settings()
    except ValidationError as e:
        logger.error("Invalid configuration", extra={"error": str(e)})
        typer.echo(f"Configuration error:\n{e}", err=True)
        raise typer.Exit(code=1)
    return ResponseDispatcher(settings)

# --------------------------------------------------------------------------- #
# interactive chat
# --------------------------------------------------------------------------- #
class ChatSession:
    """State and command handling for the terminal chat loop."""

    def __init__(self, dispatcher: ResponseDispatcher) -> None:
        self.dispatcher = dispatcher
        self.store = ChatStateStore(storage=MemoryStorage())
        self.running = True

    def handle_exit(self) -> None:
        typer.echo("Goodbye!")
        self.running = False

    def handle_help(self) -> None:
        typer.echo("Available commands:")
        for cmd, (_, description) in COMMANDS.items():
            typer.echo(f"  {cmd:<10} - {description}")

    def handle_history(self) -> None:
        if not len(self.store):
            typer.echo("No messages in history yet.")
            return
        typer.echo("\n--- Chat History ---")
        for message in self.store.messages:
            speaker = "You" if message.role == ROLE_USER else "Assistant"
            typer.echo(f"{speaker}: {message.content}")
        typer.echo("--- End History ---\n")

    def handle_clear(self) -> None:
        count = len(self.store)
        if count and not typer.confirm(f"Clear all {count} messages? This cannot be undone."):
            return
        self.store.clear_messages()
        typer.echo("Chat history has been cleared.")

    def handle_status(self) -> None:
        typer.echo("\n".join(status_lines(self.dispatcher.get_status())))

    def handle_theme(self) -> None:
        dark = self.store.toggle_theme()
        typer.echo(f"Theme set to {'dark' if dark else 'light'}.")

    def process_message(self, text: str) -> str:
        """Record the user turn, dispatch it, and record the reply."""
        self.store.add_message(text, ROLE_USER)
        self.store.set_loading(True)
        try:
            reply = self.dispatcher.respond(self.store.messages)
        finally:
            self.store.set_loading(False)
        self.store.add_message(reply, ROLE_ASSISTANT)
        return reply

    def run(self) -> None:
        typer.echo("Welcome to Sheikh Chat! Type ':help' for commands, or ':exit' to quit.\n")
        while self.running:
            try:
                user_input = input("You: ").strip()
            except (KeyboardInterrupt, EOFError):
                typer.echo()
                self.handle_exit()
                break
            if not user_input:
                continue
            cmd = user_input.lower()
            if cmd in COMMANDS:
                handler, _ = COMMANDS[cmd]
                handler(self)
            else:
                typer.echo(f"Assistant: {self.process_message(user_input)}")


COMMANDS: Dict[str, Tuple[Callable[[ChatSession], None], str]] = {
    ":exit":    (ChatSession.handle_exit,    "Exit the chat"),
    ":help":    (ChatSession.handle_help,    "Show this help message"),
    ":history": (ChatSession.handle_history, "Display conversation history"),
    ":clear":   (ChatSession.handle_clear,   "Clear all messages"),
    ":status":  (ChatSession.handle_status,  "Show AI provider status"),
    ":theme":   (ChatSession.handle_theme,   "Toggle dark/light theme"),
}

# --------------------------------------------------------------------------- #
# commands
# --------------------------------------------------------------------------- #
@cli.command()
def status() -> None:
    """Show which AI provider and model are configured."""
    typer.echo("\n".join(status_lines(build_dispatcher().get_status())))


@cli.command()
def test() -> None:
    """Send a probe message to the configured provider."""
    result = build_dispatcher().test_connection()
    typer.echo(result["message"])
    if not result["success"]:
        raise typer.Exit(code=1)


@cli.command()
def ask(message: str = typer.Argument(..., help="Question to send.")) -> None:
    """Ask a single question and print the reply."""
    if not message.strip():
        typer.echo("Please send a message first.", err=True)
        raise typer.Exit(code=1)
    typer.echo(build_dispatcher().respond_to(message.strip()))


@cli.command()
def chat() -> None:
    """Start an interactive multi-turn chat."""
    ChatSession(build_dispatcher()).run()


def main() -> None:
    cli()


if __name__ == "__main__":
    sys.exit(main())
