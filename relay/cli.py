"""Command line entry points: interactive chat and the stdio tool bridge."""

import asyncio
import json
import sys
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt

from relay.clients import create_provider
from relay.clients.errors import ProviderError
from relay.config import RelayConfig
from relay.models.messages import Message, Role
from relay.models.session import Session
from relay.services.agent import Agent, AgentConfig, AgentError
from relay.services.bridge import ToolBridgeServer, open_stdio_streams, serve_stdio
from relay.services.context import initialize_session
from relay.tools.registry import create_default_registry
from relay.utils.logging import LogConfig, get_logger, setup_logging

logger = get_logger(__name__)

MAX_RESULT_PREVIEW = 2000


class ChatCLI:
    """Interactive chat interface driving the agent loop in-process."""

    def __init__(self, agent: Agent, working_dir: Path, config: RelayConfig, console: Console | None = None):
        self.agent = agent
        self.working_dir = working_dir
        self.config = config
        self.console = console or Console()
        self.session = self._new_session()

    def _new_session(self) -> Session:
        return initialize_session(self.working_dir, self.config.instructions_file)

    async def start(self) -> None:
        """Start the interactive chat session."""
        git_info = self.session.context.git_info
        location = f"{self.working_dir}" + (f" ({git_info.branch} @ {git_info.commit[:8]})" if git_info else "")
        self.console.print(
            Panel.fit(
                "[bold blue]Relay - Interactive Chat[/bold blue]\n"
                f"Provider: {self.agent.provider.name}, working in {location}\n"
                "Commands: /help, /clear, /quit",
                border_style="blue",
            )
        )

        try:
            while True:
                user_input = await asyncio.to_thread(Prompt.ask, "\n[bold cyan]You[/bold cyan]", console=self.console)

                if user_input.lower() in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif user_input.lower() == "/help":
                    self._show_help()
                    continue
                elif user_input.lower() == "/clear":
                    self.session = self._new_session()
                    self.console.print("[yellow]Session cleared[/yellow]")
                    continue
                elif user_input.strip() == "":
                    continue

                await self.send(user_input)

        except (KeyboardInterrupt, EOFError):
            pass
        finally:
            self.session.close()
            self.console.print("\n[yellow]Goodbye![/yellow]")

    async def send(self, text: str) -> None:
        """Run one user turn through the agent and render what it produced."""
        start = self.session.message_count
        self.session.append(Message.user(text))

        with self.console.status("[dim]Thinking...[/dim]"):
            try:
                await self.agent.process(self.session)
            except AgentError as e:
                logger.debug(f"Agent error: {e}")

        for message in self.session.messages[start + 1 :]:
            self._display_message(message)

    def _display_message(self, message: Message) -> None:
        if message.metadata.get("error"):
            self.console.print(f"[red]{message.text}[/red]")
        elif message.has_tool_use():
            self.console.print(
                Panel(
                    json.dumps(message.content.input, indent=2),
                    title=f"[bold magenta]Tool call: {message.tool_name}[/bold magenta]",
                    border_style="magenta",
                )
            )
        elif message.is_tool_result():
            content = message.text or ""
            if len(content) > MAX_RESULT_PREVIEW:
                content = content[:MAX_RESULT_PREVIEW] + "\n..."
            style = "red" if message.is_error() else "dim"
            self.console.print(Panel(content, title="[dim]Tool result[/dim]", border_style=style))
        elif message.role == Role.ASSISTANT and message.text:
            self.console.print(
                Panel(
                    Markdown(message.text),
                    title="[bold green]Assistant[/bold green]",
                    border_style="green",
                    padding=(1, 2),
                )
            )

    def _show_help(self) -> None:
        """Show help information."""
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /clear - Clear session and start over
• /quit or /exit - Exit the chat

[bold]Tools:[/bold]
• read, write - file access relative to the working directory
• bash - run shell commands
• glob - find files by pattern
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]Help[/cyan]", border_style="cyan"))


def chat_main() -> None:
    """Main entry point for the chat CLI."""
    working_dir = Path(sys.argv[1] if len(sys.argv) > 1 else ".").resolve()
    config = RelayConfig.from_env()
    setup_logging(LogConfig(level="WARNING", stream="stderr"))

    try:
        provider = create_provider(config)
    except ProviderError as e:
        Console().print(f"[red]{e}[/red]")
        sys.exit(1)

    agent = Agent(provider, create_default_registry(working_dir), AgentConfig.from_relay_config(config))
    asyncio.run(ChatCLI(agent, working_dir, config).start())


async def _serve_tools(working_dir: Path, config: RelayConfig) -> None:
    server = ToolBridgeServer(create_default_registry(working_dir), tool_timeout=config.tool_timeout)
    reader, writer = await open_stdio_streams()
    logger.info(f"Serving tools over stdio from {working_dir}")
    await serve_stdio(server, reader, writer)


def serve_tools_main() -> None:
    """Serve the default tools as JSON-RPC over stdin and stdout."""
    working_dir = Path(sys.argv[1] if len(sys.argv) > 1 else ".").resolve()
    config = RelayConfig.from_env()
    # stdout carries responses
    setup_logging(LogConfig(level=config.log_level, stream="stderr"))

    try:
        asyncio.run(_serve_tools(working_dir, config))
    except KeyboardInterrupt:
        pass
